from .descriptor import KonbaseModule
from .errors import (
    DependencyError,
    DuplicateError,
    HookError,
    InitializationError,
    MigrationError,
    ModuleError,
    ModuleNotFoundError,
    PersistenceError,
    ValidationError,
)
from .extensions import ExtensionAggregator
from .models import (
    DashboardItem,
    ExtensionSnapshot,
    ModuleConfiguration,
    ModuleManifest,
    ModuleMigration,
    NavigationItem,
    OperationResult,
    SettingsPage,
)
from .registry import ModuleRegistry
from .service import ModuleService
from .manager import ModuleManager
