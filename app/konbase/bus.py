import asyncio
import inspect
from konbase.logger import get_logger

# Topics des Modul-Systems, Schema "<bereich>:<ereignis>"
MODULE_REGISTERED = "module:registered"
MODULE_ENABLED = "module:enabled"
MODULE_DISABLED = "module:disabled"
MODULE_CONFIGURED = "module:configured"
MODULES_READY = "system:modules_ready"

LIFECYCLE_TOPICS = (MODULE_REGISTERED, MODULE_ENABLED, MODULE_DISABLED, MODULE_CONFIGURED, MODULES_READY)

class EventBus:
    """Topic-basierter Bus zwischen Host und Modulen. Ein Fehler im Subscriber stoppt die anderen nicht."""
    def __init__(self):
        self.subscribers = {}
        self.log = get_logger("KonbaseBus")

    def subscribe(self, topic: str):
        """Ermöglicht die Nutzung als @bus.subscribe('topic') Decorator."""
        def decorator(callback):
            self.subscribers.setdefault(topic, []).append(callback)
            self.log.debug(f"👂 Neuer Subscriber für: {topic} ({getattr(callback, '__name__', callback)})")
            return callback
        return decorator

    def emit(self, topic: str, payload: dict = None):
        """Sendet ein Event an alle Subscriber."""
        if payload is None:
            payload = {}

        if topic in LIFECYCLE_TOPICS:
            self.log.info(f"📡 {topic} | {payload}")
        else:
            self.log.debug(f"📡 [EVENT] {topic} | Payload: {payload}")

        for callback in list(self.subscribers.get(topic, [])):
            try:
                if inspect.iscoroutinefunction(callback):
                    asyncio.get_running_loop().create_task(callback(payload))
                else:
                    callback(payload)
            except Exception as e:
                self.log.error(f"❌ Fehler im Callback für '{topic}': {e}", exc_info=True)
