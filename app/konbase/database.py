from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# ==========================================
# TABELLEN DES MODUL-SYSTEMS
# ==========================================
class ModuleManifestRecord(Base):
    __tablename__ = "module_manifests"
    id = Column(String(191), primary_key=True)
    name = Column(String(255), nullable=False)
    version = Column(String(64), nullable=False)
    description = Column(Text)
    author = Column(String(255))
    requires = Column(JSON, default=list)
    permissions = Column(JSON, default=list)
    is_enabled = Column(Boolean, default=False, nullable=False)
    install_date = Column(DateTime(timezone=True))
    update_date = Column(DateTime(timezone=True))

class ModuleConfigurationRecord(Base):
    __tablename__ = "module_configurations"
    module_id = Column(String(191), ForeignKey("module_manifests.id", ondelete="CASCADE"), primary_key=True)
    settings = Column(JSON, default=dict)
    last_updated = Column(DateTime(timezone=True))

class ModuleMigrationRecord(Base):
    """Append-only Ledger: Zeilen werden nie geändert oder gelöscht."""
    __tablename__ = "module_migrations"
    id = Column(Integer, primary_key=True, autoincrement=True)
    module_id = Column(String(191), ForeignKey("module_manifests.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(String(64), nullable=False)
    description = Column(Text)
    applied_at = Column(DateTime(timezone=True))

    __table_args__ = (UniqueConstraint("module_id", "version", name="uq_module_migration_version"),)

def create_tables(engine):
    """Legt fehlende Tabellen an. Mehrfach aufrufbar."""
    Base.metadata.create_all(bind=engine)
