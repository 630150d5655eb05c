from typing import List, Optional

from konbase.logger import get_logger
from .descriptor import KonbaseModule
from .models import DashboardItem, ExtensionSnapshot, NavigationItem, SettingsPage
from .registry import ModuleRegistry

log = get_logger("Extensions")

class ExtensionAggregator:
    """
    Sammelt Dashboard-Karten, Navigationseinträge und Settings-Seiten aller
    aktiven Module. Wird bei jedem Aufruf komplett neu berechnet, kein Cache.
    """
    def __init__(self, registry: ModuleRegistry):
        self.registry = registry

    def refresh(self) -> ExtensionSnapshot:
        dashboard, navigation, settings_pages = [], [], []

        for module in self.registry.list():
            if not self.registry.is_enabled(module.id):
                continue
            dashboard.extend(self._collect_dashboard(module))
            navigation.extend(self._collect_navigation(module))
            page = self._collect_settings_page(module)
            if page is not None:
                settings_pages.append(page)

        # sort() ist stabil: Gleichstände bleiben in Registrierungsreihenfolge
        dashboard.sort(key=lambda item: -item.priority)
        navigation.sort(key=lambda item: item.order)

        return ExtensionSnapshot(dashboard=dashboard, navigation=navigation, settings_pages=settings_pages)

    def dashboard_items(self) -> List[DashboardItem]:
        return self.refresh().dashboard

    def navigation_items(self) -> List[NavigationItem]:
        return self.refresh().navigation

    def _coerce(self, model_cls, raw, module_id: str):
        if isinstance(raw, model_cls):
            return raw if raw.module_id else raw.model_copy(update={"module_id": module_id})
        if isinstance(raw, dict):
            return model_cls.model_validate({**raw, "module_id": raw.get("module_id") or module_id})
        raise TypeError(f"{model_cls.__name__} erwartet, bekommen: {type(raw).__name__}")

    def _collect_dashboard(self, module: KonbaseModule) -> List[DashboardItem]:
        try:
            return [self._coerce(DashboardItem, raw, module.id) for raw in module.get_dashboard_items() or []]
        except Exception as e:
            log.error(f"❌ Dashboard-Provider von {module.id} fehlgeschlagen: {e}")
            return [DashboardItem(title=module.name, module_id=module.id, error=f"Modul-Fehler: {e}")]

    def _collect_navigation(self, module: KonbaseModule) -> List[NavigationItem]:
        try:
            return [self._coerce(NavigationItem, raw, module.id) for raw in module.get_navigation_items() or []]
        except Exception as e:
            log.error(f"❌ Navigations-Provider von {module.id} fehlgeschlagen: {e}")
            return []

    def _collect_settings_page(self, module: KonbaseModule) -> Optional[SettingsPage]:
        try:
            raw = module.get_settings_page()
            return self._coerce(SettingsPage, raw, module.id) if raw is not None else None
        except Exception as e:
            log.error(f"❌ Settings-Provider von {module.id} fehlgeschlagen: {e}")
            return None
