import importlib
import pkgutil
from typing import List

from konbase.bus import (
    MODULE_CONFIGURED,
    MODULE_DISABLED,
    MODULE_ENABLED,
    MODULE_REGISTERED,
    MODULES_READY,
    EventBus,
)
from konbase.logger import get_logger
from .descriptor import KonbaseModule
from .errors import ModuleError
from .extensions import ExtensionAggregator
from .models import (
    DashboardItem,
    ModuleConfiguration,
    ModuleManifest,
    NavigationItem,
    OperationResult,
    SettingsPage,
)
from .registry import ModuleRegistry
from .service import ModuleService

log = get_logger("ModuleManager")

class ModuleManager:
    """
    Composition Root des Modul-Systems. Besitzt genau eine Registry, ein
    Gateway, einen Aggregator und einen Event-Bus; der Host hält die Instanz.
    """
    def __init__(self, engine, bus: EventBus = None):
        self.bus = bus or EventBus()
        self.registry = ModuleRegistry(self.bus)
        self.service = ModuleService(self.registry, engine)
        self.extensions = ExtensionAggregator(self.registry)

    async def boot(self, package: str = None):
        """Store initialisieren, Module laden, gespeicherten Zustand wiederherstellen."""
        log.info("🚀 Starte Modul-System...")
        await self.service.initialize()

        if package:
            await self.load_all(package)

        await self.service.restore_enabled()
        enabled = [m.id for m in self.registry.list_manifests() if m.is_enabled]
        log.info(f"✅ Boot abgeschlossen: {len(self.registry.registry)} Module, {len(enabled)} aktiv.")
        self.bus.emit(MODULES_READY, {"modules": len(self.registry.registry), "enabled": enabled})

    async def load_all(self, package: str) -> int:
        """Scant ein Paket und registriert jedes Unterpaket mit einem 'module'-Attribut."""
        try:
            root = importlib.import_module(package)
        except ImportError as e:
            log.warning(f"⚠️ Modul-Paket '{package}' nicht gefunden: {e}")
            return 0

        loaded = 0
        for _, name, _ in pkgutil.iter_modules(getattr(root, "__path__", [])):
            full_module_name = f"{package}.{name}"
            try:
                candidate = getattr(importlib.import_module(full_module_name), "module", None)
            except Exception as e:
                log.error(f"💥 Fataler Fehler beim Import von {full_module_name}: {e}", exc_info=True)
                continue

            if candidate is None:
                log.debug(f"Überspringe {full_module_name} (kein 'module' gefunden)")
                continue
            if isinstance(candidate, type) and issubclass(candidate, KonbaseModule):
                candidate = candidate()
            if not isinstance(candidate, KonbaseModule):
                log.warning(f"⚠️ {full_module_name}.module ist kein KonbaseModule, wird ignoriert.")
                continue

            if await self.register(candidate):
                loaded += 1

        return loaded

    # --- HOST-SCHNITTSTELLE ---

    async def register(self, module: KonbaseModule) -> OperationResult:
        result = self.registry.register(module)
        if not result:
            return result

        if self.registry.initialized:
            try:
                await self.service.reconcile(module.id)
                await self.service.restore_enabled()
            except ModuleError as e:
                log.error(f"❌ Store-Abgleich für {module.id} fehlgeschlagen: {e}")
                result = OperationResult(ok=True, message=f"{result.message}, Store-Abgleich fehlgeschlagen: {e}", error=e)

        self.bus.emit(MODULE_REGISTERED, {"id": module.id, "version": module.version})
        return result

    async def enable(self, module_id: str) -> OperationResult:
        try:
            result = await self.service.enable_module(module_id)
        except ModuleError as e:
            log.error(f"❌ Aktivierung von {module_id} fehlgeschlagen: {e}")
            return OperationResult.failure(e)

        if result:
            self.bus.emit(MODULE_ENABLED, {"id": module_id})
        return result

    async def disable(self, module_id: str) -> OperationResult:
        try:
            result = await self.service.disable_module(module_id)
        except ModuleError as e:
            log.error(f"❌ Deaktivierung von {module_id} fehlgeschlagen: {e}")
            return OperationResult.failure(e)

        if result:
            self.bus.emit(MODULE_DISABLED, {"id": module_id})
        return result

    def list_manifests(self) -> List[ModuleManifest]:
        return [m.model_copy(deep=True) for m in self.registry.list_manifests()]

    def get_dashboard_extensions(self) -> List[DashboardItem]:
        return self.extensions.dashboard_items()

    def get_navigation_extensions(self) -> List[NavigationItem]:
        return self.extensions.navigation_items()

    def get_settings_pages(self) -> List[SettingsPage]:
        return self.extensions.refresh().settings_pages

    async def get_configuration(self, module_id: str) -> ModuleConfiguration:
        return await self.service.get_configuration(module_id)

    async def save_configuration(self, config) -> ModuleConfiguration:
        saved = await self.service.save_configuration(config)
        self.bus.emit(MODULE_CONFIGURED, {"id": saved.module_id, "settings": dict(saved.settings)})
        return saved
