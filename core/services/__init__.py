from core.services.image_client import HTTPImageClient, OpenAIImageClient, build_image_client
from core.services.llm_client import OpenAITextClient, TextGenerationClient
from core.services.persistence import InMemoryPersistence, PersistenceClient, RedisPersistence, build_persistence


__all__ = [
    "HTTPImageClient",
    "InMemoryPersistence",
    "OpenAIImageClient",
    "OpenAITextClient",
    "PersistenceClient",
    "RedisPersistence",
    "TextGenerationClient",
    "build_image_client",
    "build_persistence",
]
