import pytest
from pydantic import ValidationError

from chunkstore.config import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    settings = Settings()
    assert settings.storage == "memory"
    assert settings.redis_dsn is None
    assert settings.port == 8000


def test_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CHUNKSTORE_PORT", "9000")
    monkeypatch.setenv("CHUNKSTORE_DEFAULT_OWNER", "node1")
    settings = Settings()
    assert settings.port == 9000
    assert settings.default_owner == "node1"


def test_s3_requires_credentials(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CHUNKSTORE_STORAGE", "s3")
    monkeypatch.setenv("CHUNKSTORE_S3_BUCKET", "chunks")
    with pytest.raises(ValidationError, match="chunkstore_s3_access_key_id"):
        Settings()
