import os
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"

class Settings:
    """Zentrale Laufzeit-Konfiguration, komplett über ENV steuerbar."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./konbase_modules.db")
        self.debug = _env_flag("KONBASE_DEBUG")
        self.log_dir = os.getenv("KONBASE_LOG_DIR", "./logs")
        # Paket, in dem beim Boot nach Modulen gesucht wird
        self.plugin_package = os.getenv("KONBASE_PLUGIN_PACKAGE", "plugins")
        self.host = os.getenv("KONBASE_HOST", "0.0.0.0")
        self.port = int(os.getenv("KONBASE_PORT", "8081"))

def _enable_sqlite_transactions(engine):
    # pysqlite sendet vor DDL kein BEGIN, also übernimmt SQLAlchemy das selbst
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

def create_store_engine(url: str):
    """Erzeugt die Engine für den Modul-Store. Baut selbst noch keine Verbindung auf."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-Memory DB: alle Sessions müssen dieselbe Verbindung teilen
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, pool_pre_ping=True, **kwargs)
        _enable_sqlite_transactions(engine)
        return engine
    return create_engine(url, pool_pre_ping=True)

settings = Settings()
