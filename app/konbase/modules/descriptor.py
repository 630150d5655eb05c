from typing import Any, Dict, List, Optional, Sequence, Union

from .models import DashboardItem, ModuleMigration, NavigationItem, SettingsPage

class KonbaseModule:
    """
    Vertrag für JEDES Modul. Pflicht sind nur ``id``, ``name`` und ``version``,
    alles andere ist optional und wird vom System nur aufgerufen, wenn das
    Modul es überschreibt.

    Beispiel::

        class InventoryStats(KonbaseModule):
            id = "konbase.inventory.stats"
            name = "Inventar-Statistik"
            version = "1.0.0"

            def get_dashboard_items(self):
                return [DashboardItem(title="Bestand", priority=10)]
    """

    id: str = None
    name: str = None
    version: str = None
    description: str = ""
    author: str = "Unknown"
    requires: Sequence[str] = ()
    permissions: Sequence[str] = ()

    def __init__(self):
        # Wird von der Registry bei der Registrierung gesetzt (ModuleContext)
        self.context = None

    # --- LIFECYCLE HOOKS (synchron) ---

    def on_register(self) -> None:
        pass

    def on_enable(self) -> None:
        pass

    def on_disable(self) -> None:
        pass

    def on_update(self, prev_version: str) -> None:
        pass

    # --- EXTENSION PROVIDER ---

    def get_dashboard_items(self) -> List[Union[DashboardItem, Dict[str, Any]]]:
        return []

    def get_navigation_items(self) -> List[Union[NavigationItem, Dict[str, Any]]]:
        return []

    def get_settings_page(self) -> Optional[Union[SettingsPage, Dict[str, Any]]]:
        return None

    # --- DATENBANK ---

    def get_migrations(self) -> List[Union[ModuleMigration, Dict[str, Any]]]:
        """Migrationen in der Reihenfolge, in der sie angewendet werden müssen."""
        return []

    def get_configuration_schema(self) -> Optional[Dict[str, Any]]:
        return None

    def __repr__(self):
        return f"<{type(self).__name__} id={self.id!r} version={self.version!r}>"
