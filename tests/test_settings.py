import pytest
from pydantic import ValidationError

from config.app_settings import Settings


def test_llm_key_falls_back_to_openai_key(monkeypatch) -> None:
    monkeypatch.delenv("LLM_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-openai")

    assert Settings().LLM_API_KEY == "sk-from-openai"


def test_explicit_llm_key_wins(monkeypatch) -> None:
    monkeypatch.setenv("LLM_API_KEY", "explicit")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-openai")

    assert Settings().LLM_API_KEY == "explicit"


def test_secondary_ceiling_must_cover_primary(monkeypatch) -> None:
    monkeypatch.setenv("STORAGE_PRIMARY_MAX_BYTES", "4096")
    monkeypatch.setenv("STORAGE_SECONDARY_MAX_BYTES", "1024")

    with pytest.raises(ValidationError):
        Settings()


def test_redis_url_for_appends_database(monkeypatch) -> None:
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/")

    assert Settings().redis_url_for(2) == "redis://cache:6379/2"
