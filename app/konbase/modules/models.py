from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model, model_validator

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class ModuleManifest(BaseModel):
    """Persistierte Projektion eines Modul-Deskriptors."""
    id: str = Field(..., description="Eindeutige ID, z.B. 'konbase.inventory.stats'")
    name: str = Field(..., description="Anzeigename in der UI")
    version: str = Field(..., description="Semantische Versionierung (für uns opak)")
    description: str = Field(default="")
    author: str = Field(default="Unknown")
    requires: List[str] = Field(default_factory=list, description="IDs der benötigten Module")
    permissions: List[str] = Field(default_factory=list, description="z.B. 'read:inventory'")
    is_enabled: bool = False
    install_date: datetime = Field(default_factory=utcnow)
    update_date: datetime = Field(default_factory=utcnow)

class ModuleConfiguration(BaseModel):
    module_id: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utcnow)

class ModuleMigration(BaseModel):
    """Eine Migration, wie sie ein Modul deklariert.

    Entweder ``operation`` (bekommt die SQLAlchemy-Connection) oder ``sql``
    (genau ein Statement) muss gesetzt sein.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    version: str
    description: str = ""
    operation: Optional[Callable[[Any], Any]] = Field(default=None, exclude=True)
    sql: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_action(self):
        if (self.operation is None) == (self.sql is None):
            raise ValueError(f"Migration {self.version}: genau eins von 'operation' oder 'sql' angeben")
        return self

class MigrationRecord(BaseModel):
    """Eine Zeile aus dem Migrations-Ledger."""
    id: int
    module_id: str
    version: str
    description: Optional[str] = None
    applied_at: datetime

# --- EXTENSION POINTS ---

class DashboardItem(BaseModel):
    title: str
    priority: int = 0  # Höhere Werte erscheinen zuerst
    grid_span: Literal["full", "half", "third"] = "third"
    module_id: Optional[str] = None
    render: Optional[Callable[..., Any]] = Field(default=None, exclude=True)
    # Nur bei Platzhaltern für kaputte Provider gesetzt
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

class NavigationItem(BaseModel):
    title: Optional[str] = None
    label: Optional[str] = None
    path: str
    icon: Optional[str] = None
    required_role: Optional[Literal["member", "manager", "admin", "super_admin"]] = None
    parent: Optional[str] = None
    module_id: Optional[str] = None
    order: int = 0

    @model_validator(mode="after")
    def _needs_caption(self):
        if not (self.title or self.label):
            raise ValueError(f"Navigationseintrag für '{self.path}' braucht 'title' oder 'label'")
        return self

    @property
    def caption(self) -> str:
        return self.label or self.title

class SettingsPage(BaseModel):
    title: str
    module_id: Optional[str] = None
    required_role: Optional[Literal["member", "manager", "admin", "super_admin"]] = None
    render: Optional[Callable[..., Any]] = Field(default=None, exclude=True)

class ExtensionSnapshot(BaseModel):
    dashboard: List[DashboardItem] = Field(default_factory=list)
    navigation: List[NavigationItem] = Field(default_factory=list)
    settings_pages: List[SettingsPage] = Field(default_factory=list)

# --- ERGEBNISSE ---

class OperationResult(BaseModel):
    """Erfolg/Fehler einer Registry- oder Host-Operation. Wahrheitswert == ok."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    message: str = ""
    error: Optional[Exception] = Field(default=None, exclude=True)

    def __bool__(self):
        return self.ok

    @classmethod
    def success(cls, message: str = ""):
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, error: Exception):
        return cls(ok=False, message=str(error), error=error)

# --- KONFIGURATIONS-SCHEMA ---

_SCHEMA_TYPES = {
    "string": str,
    "boolean": bool,
    "integer": int,
    "number": float,
    "array": list,
    "object": dict,
}

def build_settings_model(module_id: str, schema: Dict[str, Any]):
    """Baut aus dem JSON-Schema-artigen Dict eines Moduls ein Pydantic-Model.

    Unterstützt werden ``properties`` (mit ``type`` und optional ``default``),
    ``required`` und ``additionalProperties``. Unbekannte Typen werden als
    ``Any`` behandelt.
    """
    required = set(schema.get("required", []))
    fields = {}
    for key, prop in schema.get("properties", {}).items():
        py_type = _SCHEMA_TYPES.get(prop.get("type"), Any)
        if key in required:
            fields[key] = (py_type, ...)
        elif "default" in prop:
            fields[key] = (py_type, prop["default"])
        else:
            fields[key] = (Optional[py_type], None)

    extra = "forbid" if schema.get("additionalProperties") is False else "allow"
    model_name = "Settings_" + "".join(c if c.isalnum() else "_" for c in module_id)
    return create_model(model_name, __config__=ConfigDict(extra=extra, strict=True), **fields)
