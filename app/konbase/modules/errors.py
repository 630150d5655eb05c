class ModuleError(Exception):
    """Basisklasse aller Fehler des Modul-Systems."""

    def __init__(self, message: str, module_id: str = None):
        super().__init__(message)
        self.message = message
        self.module_id = module_id


class ValidationError(ModuleError):
    """Deskriptor oder Konfiguration ist unvollständig oder passt nicht zum Schema."""


class DuplicateError(ModuleError):
    pass


class ModuleNotFoundError(ModuleError):
    pass


class DependencyError(ModuleError):
    """Ein in 'requires' genanntes Modul fehlt oder blockiert die Transition."""


class InitializationError(ModuleError):
    pass


class PersistenceError(ModuleError):
    pass


class MigrationError(ModuleError):
    def __init__(self, module_id: str, version: str, cause: Exception):
        super().__init__(
            f"Migration {version} für Modul '{module_id}' fehlgeschlagen: {cause}",
            module_id=module_id,
        )
        self.version = version
        self.cause = cause


class HookError(ModuleError):
    def __init__(self, module_id: str, hook: str, cause: Exception):
        super().__init__(
            f"Hook '{hook}' von Modul '{module_id}' ist fehlgeschlagen: {cause}",
            module_id=module_id,
        )
        self.hook = hook
        self.cause = cause
