from konbase.logger import get_logger
from .models import ModuleManifest

class ModuleContext:
    """
    Der isolierte Sandkasten für JEDES Modul.
    Eigener Logger und ein Event-Bus-Proxy, der die Permissions aus dem Manifest prüft.
    """
    def __init__(self, manifest: ModuleManifest, bus=None):
        self.manifest = manifest
        self.bus = bus
        # Logger zeigt z.B. [Module:Inventar-Statistik]
        self.log = get_logger(f"Module:{manifest.name}")
        self.state = {}

    def has_permission(self, tag: str) -> bool:
        granted = self.manifest.permissions
        action = tag.split(":", 1)[0]
        return "*" in granted or tag in granted or f"{action}:*" in granted

    # --- EVENT BUS PROXY ---

    def subscribe(self, topic: str):
        def decorator(callback):
            if self.bus is None:
                self.log.warning(f"Kein Event-Bus vorhanden, '{topic}' wird nicht abonniert.")
            elif self.has_permission(f"subscribe:{topic}"):
                self.log.debug(f"Abonniert Topic: {topic}")
                self.bus.subscribe(topic)(callback)
            else:
                self.log.warning(f"🚫 Rechtefehler: Modul darf '{topic}' nicht abonnieren!")
            return callback
        return decorator

    def emit(self, topic: str, payload: dict = None) -> bool:
        if self.bus is None:
            return False
        if not self.has_permission(f"emit:{topic}"):
            self.log.warning(f"🚫 Rechtefehler: Modul darf '{topic}' nicht senden!")
            return False
        self.bus.emit(topic, payload)
        return True
