import logging

from sqlalchemy.pool import StaticPool

from konbase.bus import MODULE_CONFIGURED
from konbase.config import Settings, create_store_engine
from konbase.logger import LogNoiseFilter, setup_logging


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///tmp/modules.db")
    monkeypatch.setenv("KONBASE_DEBUG", "TRUE")
    monkeypatch.setenv("KONBASE_PLUGIN_PACKAGE", "custom_plugins")
    monkeypatch.setenv("KONBASE_PORT", "9000")

    settings = Settings()

    assert settings.database_url == "sqlite:///tmp/modules.db"
    assert settings.debug is True
    assert settings.plugin_package == "custom_plugins"
    assert settings.port == 9000


def test_settings_defaults(monkeypatch):
    for name in ["DATABASE_URL", "KONBASE_DEBUG", "KONBASE_PLUGIN_PACKAGE", "KONBASE_PORT"]:
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.database_url.startswith("sqlite")
    assert settings.debug is False
    assert settings.plugin_package == "plugins"


def test_in_memory_engine_shares_connection():
    engine = create_store_engine("sqlite://")
    assert isinstance(engine.pool, StaticPool)
    engine.dispose()


def test_setup_logging_writes_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(str(tmp_path))
        logging.getLogger("ModuleRegistry").info("hallo")
        for handler in root.handlers:
            handler.flush()
        assert "hallo" in (tmp_path / "konbase.log").read_text(encoding="utf-8")
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = saved_handlers
        root.setLevel(saved_level)
        for name in ["uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine"]:
            third_party = logging.getLogger(name)
            third_party.handlers = []
            third_party.propagate = True
            third_party.setLevel(logging.NOTSET)


def test_noise_filter_drops_polling(monkeypatch):
    monkeypatch.setattr("konbase.logger.IS_DEBUG", False)
    record = logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, "GET /extensions/dashboard 200", None, None)
    assert LogNoiseFilter().filter(record) is False


def test_bus_contains_subscriber_failures(bus):
    received = []

    @bus.subscribe(MODULE_CONFIGURED)
    def broken(payload):
        raise RuntimeError("kaputt")

    bus.subscribe(MODULE_CONFIGURED)(received.append)
    bus.emit(MODULE_CONFIGURED, {"id": "inv"})

    assert received == [{"id": "inv"}]
