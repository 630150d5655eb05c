import inspect
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from konbase.logger import get_logger
from .context import ModuleContext
from .descriptor import KonbaseModule
from .errors import DuplicateError, HookError, ModuleNotFoundError, ValidationError
from .models import ModuleManifest, OperationResult, utcnow

log = get_logger("ModuleRegistry")

REQUIRED_FIELDS = ("id", "name", "version")

class ModuleRegistry:
    """
    Reine In-Memory-Buchhaltung: die einzige Quelle der Wahrheit für
    "ist das Modul bekannt" und "ist es aktiv". Macht keinerlei I/O.
    """
    def __init__(self, bus=None):
        # Format: { "module_id": { "manifest": ..., "module": ..., "context": ... } }
        self.registry = {}
        self.bus = bus
        self.initialized = False

    def register(self, module: KonbaseModule) -> OperationResult:
        missing = [f for f in REQUIRED_FIELDS if not getattr(module, f, None)]
        if missing:
            err = ValidationError(f"Modul-Deskriptor unvollständig, es fehlt: {', '.join(missing)}",
                                  module_id=getattr(module, "id", None))
            log.error(f"❌ {err}")
            return OperationResult.failure(err)

        if module.id in self.registry:
            err = DuplicateError(f"Modul '{module.id}' ist bereits registriert", module_id=module.id)
            log.warning(f"💥 ID-Konflikt: {err}")
            return OperationResult.failure(err)

        now = utcnow()
        try:
            manifest = ModuleManifest(
                id=module.id,
                name=module.name,
                version=module.version,
                description=module.description or "",
                author=module.author or "Unknown",
                requires=list(module.requires or []),
                permissions=list(module.permissions or []),
                install_date=now,
                update_date=now,
            )
        except SchemaError as ve:
            err = ValidationError(f"Manifest-Fehler in '{module.id}': {ve}", module_id=module.id)
            log.error(f"❌ {err}")
            return OperationResult.failure(err)

        ctx = ModuleContext(manifest, self.bus)
        module.context = ctx

        hook_error = self.call_hook(module.id, module, "on_register")
        if hook_error:
            module.context = None
            log.error(f"❌ Registrierung abgebrochen: {hook_error}")
            return OperationResult.failure(hook_error)

        self.registry[module.id] = {
            "manifest": manifest,
            "module": module,
            "context": ctx,
        }
        log.info(f"🧩 Modul registriert: {manifest.name} (v{manifest.version})")
        return OperationResult.success(f"Modul '{manifest.name}' registriert")

    def call_hook(self, module_id: str, module: KonbaseModule, hook: str, *args) -> Optional[HookError]:
        """Fehlergrenze für Modul-Callbacks. Gibt den Fehler zurück statt ihn zu werfen."""
        fn = getattr(module, hook, None)
        if not callable(fn):
            return None
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                if hasattr(result, "close"):
                    result.close()
                raise TypeError("asynchrone Hooks werden nicht unterstützt")
        except Exception as e:
            return HookError(module_id, hook, e)
        return None

    # --- LESEZUGRIFFE ---

    def get(self, module_id: str) -> Optional[KonbaseModule]:
        entry = self.registry.get(module_id)
        return entry["module"] if entry else None

    def get_manifest(self, module_id: str) -> Optional[ModuleManifest]:
        entry = self.registry.get(module_id)
        return entry["manifest"] if entry else None

    def get_context(self, module_id: str) -> Optional[ModuleContext]:
        entry = self.registry.get(module_id)
        return entry["context"] if entry else None

    def list(self) -> List[KonbaseModule]:
        return [entry["module"] for entry in self.registry.values()]

    def list_manifests(self) -> List[ModuleManifest]:
        return [entry["manifest"] for entry in self.registry.values()]

    def is_enabled(self, module_id: str) -> bool:
        manifest = self.get_manifest(module_id)
        return manifest.is_enabled if manifest else False

    # --- ZUSTANDSWECHSEL ---

    def set_enabled(self, module_id: str, enabled: bool) -> OperationResult:
        entry = self.registry.get(module_id)
        if not entry:
            return OperationResult.failure(
                ModuleNotFoundError(f"Modul '{module_id}' ist nicht registriert", module_id=module_id)
            )

        manifest = entry["manifest"]
        if manifest.is_enabled == enabled:
            return OperationResult.success(f"Modul '{manifest.name}' ist bereits {'aktiv' if enabled else 'inaktiv'}")

        # Erst der Hook, dann das Flag. Wirft der Hook, bleibt alles wie es war.
        hook = "on_enable" if enabled else "on_disable"
        hook_error = self.call_hook(module_id, entry["module"], hook)
        if hook_error:
            log.error(f"❌ {hook_error}")
            return OperationResult.failure(hook_error)

        manifest.is_enabled = enabled
        manifest.update_date = utcnow()
        log.info(f"{'✅' if enabled else '⏸️'} Modul {manifest.name} ist jetzt {'aktiv' if enabled else 'inaktiv'}")
        return OperationResult.success(f"Modul '{manifest.name}' {'aktiviert' if enabled else 'deaktiviert'}")

    def mark_disabled(self, module_id: str):
        """Setzt das Flag ohne Hook zurück. Nur für gescheiterte Rücknahmen."""
        manifest = self.get_manifest(module_id)
        if manifest:
            manifest.is_enabled = False
            manifest.update_date = utcnow()

    def apply_persisted_state(self, module_id: str, persisted: ModuleManifest):
        """Übernimmt das ursprüngliche Installationsdatum aus dem Store."""
        manifest = self.get_manifest(module_id)
        if manifest and persisted.install_date:
            manifest.install_date = persisted.install_date

    def pin_version(self, module_id: str, version: str):
        """Hält die gespeicherte Version fest, solange ein Update aussteht."""
        manifest = self.get_manifest(module_id)
        if manifest:
            manifest.version = version

    def touch(self, module_id: str):
        manifest = self.get_manifest(module_id)
        if manifest:
            manifest.update_date = utcnow()
