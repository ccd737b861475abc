from fastapi import FastAPI
from features.sub_manager.application.ports import BackgroundSpawner
from features.sub_manager.interface.api import get_workspace, router as manager_router
from features.sub_manager.infrastructure.db import init_db
from features.sub_manager.infrastructure.logging import setup_logging

app = FastAPI(title="airSubManager API", version="0.1.0")
_background = BackgroundSpawner()

@app.on_event("startup")
async def _startup():
    setup_logging()
    init_db()
    # silent reconciliation of stored node counts
    _background(get_workspace().subscriptions.refresh_all(is_initial_load=True))

@app.get("/healthz")
def healthz():
    return {"status": "ok"}

app.include_router(manager_router, prefix="/api")
