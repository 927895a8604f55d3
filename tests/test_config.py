from bulk_indexer.config import Settings
from bulk_indexer.store import MemoryStore, RedisStore, build_store


def test_settings_defaults(monkeypatch):
    for key in ("BULK_BATCH_SIZE", "SOURCE_TABLE", "INDEX_NAME", "SOURCE_CLASS_NAME", "REDIS_URL"):
        monkeypatch.delenv(key, raising=False)
    settings = Settings.from_env()
    assert settings.batch_size == 1000
    assert settings.source_table == "material"
    assert settings.index_name == "material_index"
    assert settings.source_class_name == "Material"
    assert settings.redis_url == ""
    assert settings.namespace == "bulk_indexer"


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("BULK_BATCH_SIZE", "250")
    monkeypatch.setenv("SOURCE_TABLE", "book_item")
    monkeypatch.setenv("SOURCE_COLUMNS", "title, author ,")
    monkeypatch.setenv("WORKER_ENABLED", "no")
    monkeypatch.setenv("OS_TIMEOUT_SEC", "not-a-number")
    settings = Settings.from_env()
    assert settings.batch_size == 250
    assert settings.source_class_name == "BookItem"
    assert settings.source_columns == ["title", "author"]
    assert settings.worker_enabled is False
    assert settings.timeout_sec == 30


def test_override_coerces_types():
    settings = Settings.from_env()
    overridden = settings.override({"batch_size": "10", "worker_enabled": 0, "source_columns": "a,b", "index_name": None})
    assert overridden.batch_size == 10
    assert overridden.worker_enabled is False
    assert overridden.source_columns == ["a", "b"]
    assert overridden.index_name == settings.index_name
    assert settings.override(None) is settings


def test_build_store_picks_backend():
    assert isinstance(build_store(""), MemoryStore)
    assert isinstance(build_store("redis://localhost:6379/0"), RedisStore)
