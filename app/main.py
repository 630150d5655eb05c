from fastapi import FastAPI

from konbase.api import create_module_router
from konbase.config import create_store_engine, settings
from konbase.logger import get_logger, setup_logging
from konbase.modules import InitializationError, ModuleManager

setup_logging(settings.log_dir)
log = get_logger("Main")

app = FastAPI(title="Konbase Modules")

# Genau eine Instanz pro Prozess, gehalten vom Host
app.state.module_manager = ModuleManager(create_store_engine(settings.database_url))
app.include_router(create_module_router(app.state.module_manager))

# --- LIFECYCLE HANDLER ---
@app.on_event("startup")
async def startup_event():
    try:
        await app.state.module_manager.boot(settings.plugin_package)
    except InitializationError as e:
        # Kein Retry hier: der Betreiber muss den Store prüfen und neu starten
        log.error(f"❌ Modul-System nicht verfügbar: {e}")

@app.get("/health")
def health():
    return {"modules_initialized": app.state.module_manager.registry.initialized}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.debug)
