from sqlalchemy import text

from konbase.bus import MODULE_CONFIGURED
from konbase.modules import DashboardItem, KonbaseModule, ModuleMigration, NavigationItem, SettingsPage
from konbase.modules.models import utcnow

INVENTORY_CHANGED = "inventory:changed"
LOW_STOCK = "inventory:low_stock"

def _create_snapshot_table(conn):
    conn.execute(text(
        "CREATE TABLE IF NOT EXISTS inventory_stats_snapshots ("
        " id INTEGER PRIMARY KEY,"
        " association_id VARCHAR(64) NOT NULL,"
        " item_count INTEGER NOT NULL DEFAULT 0,"
        " taken_at TIMESTAMP"
        ")"
    ))

# ==========================================
# MODUL: Inventar-Statistik
# ==========================================
class InventoryStatsModule(KonbaseModule):
    id = "konbase.inventory_stats"
    name = "Inventar-Statistik"
    version = "1.1.0"
    description = "Zeigt Bestandszahlen und Warnungen bei niedrigem Bestand auf dem Dashboard."
    author = "Konbase Team"
    permissions = [
        "database:create-tables",
        f"subscribe:{INVENTORY_CHANGED}",
        f"subscribe:{MODULE_CONFIGURED}",
        f"emit:{LOW_STOCK}",
    ]

    def on_register(self):
        self.context.subscribe(INVENTORY_CHANGED)(self.on_inventory_changed)
        self.context.subscribe(MODULE_CONFIGURED)(self.on_configured)

    def on_enable(self):
        self.context.log.info("Inventar-Statistik aktiviert.")

    def on_disable(self):
        self.context.state.pop("last_snapshot", None)

    def on_update(self, prev_version):
        self.context.log.info(f"Update von v{prev_version} auf v{self.version}")

    # --- EVENTS ---

    def _setting(self, key):
        settings = self.context.state.get("settings", {})
        if key in settings:
            return settings[key]
        return self.get_configuration_schema()["properties"][key]["default"]

    def on_configured(self, payload):
        if payload.get("id") == self.id:
            self.context.state["settings"] = dict(payload.get("settings") or {})

    def on_inventory_changed(self, payload):
        if not self.context.manifest.is_enabled:
            return

        count = int(payload.get("item_count", 0))
        self.context.state["last_snapshot"] = {"item_count": count, "taken_at": utcnow().isoformat()}

        if self._setting("low_stock_alerts") and count <= self._setting("low_stock_threshold"):
            self.context.log.warning(f"⚠️ Niedriger Bestand: {count} Artikel")
            self.context.emit(LOW_STOCK, {"association_id": payload.get("association_id"), "item_count": count})

    # --- ERWEITERUNGEN ---

    def render_card(self):
        snapshot = self.context.state.get("last_snapshot", {})
        return {"items": snapshot.get("item_count", 0), "taken_at": snapshot.get("taken_at")}

    def get_dashboard_items(self):
        return [DashboardItem(title="Inventar-Überblick", priority=10, grid_span="half", render=self.render_card)]

    def get_navigation_items(self):
        return [NavigationItem(title="Inventar-Statistik", path="/inventory/stats", icon="bar_chart", order=100)]

    def get_settings_page(self):
        return SettingsPage(title="Inventar-Statistik", required_role="manager")

    def get_migrations(self):
        return [
            ModuleMigration(version="1.0.0", description="Snapshot-Tabelle anlegen", operation=_create_snapshot_table),
            ModuleMigration(
                version="1.1.0",
                description="Index auf association_id",
                sql="CREATE INDEX IF NOT EXISTS ix_inventory_stats_assoc ON inventory_stats_snapshots (association_id)",
            ),
        ]

    def get_configuration_schema(self):
        return {
            "properties": {
                "low_stock_alerts": {"type": "boolean", "title": "Warnung bei niedrigem Bestand", "default": False},
                "low_stock_threshold": {"type": "integer", "title": "Schwellwert", "default": 5},
            },
            "additionalProperties": False,
        }

module = InventoryStatsModule()
