import uvicorn

from config.app_settings import settings
from workout_api.api import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.WEB_SERVER_HOST, port=settings.WEB_SERVER_PORT, log_config=None)
