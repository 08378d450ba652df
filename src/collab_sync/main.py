from fastapi import FastAPI

from collab_sync.api.ws import router as ws_router
from collab_sync.logging_config import configure_logging


configure_logging()

app = FastAPI(title="collab-sync")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


app.include_router(ws_router)
