from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from nearby.core.config import HOST, PORT, SEED_DEMO_USERS, WS_HEARTBEAT_SECONDS
from nearby.core.logging import setup_logging
from nearby.api.router import api_router
from nearby.engine.reset import DailyResetScheduler
from nearby.engine.store import PresenceStore
from nearby.realtime.manager import ConnectionManager
from nearby.realtime.router import router as realtime_router

setup_logging()
logger.info("Starting Nearby backend")


def build_store(broadcaster: ConnectionManager, seed: bool = SEED_DEMO_USERS) -> PresenceStore:
    store = PresenceStore(publish=broadcaster.publish)
    if seed:
        store.seed_demo_users()
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    broadcaster = ConnectionManager()
    broadcaster.start()

    store = build_store(broadcaster)
    scheduler = DailyResetScheduler(store)
    scheduler.start()

    app.state.broadcaster = broadcaster
    app.state.store = store
    app.state.scheduler = scheduler
    logger.info("Engine ready")

    yield

    await scheduler.stop()
    await broadcaster.stop()
    logger.info("Engine shut down")


app = FastAPI(
    title="Nearby Backend",
    version="0.1.0",
    lifespan=lifespan,
)

# All HTTP routes under /v1
app.include_router(api_router)

# Realtime event stream
app.include_router(realtime_router)


@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    # Protocol-level WebSocket keepalive; unresponsive peers are closed by uvicorn
    uvicorn.run(
        "nearby.main:app",
        host=HOST,
        port=PORT,
        ws_ping_interval=WS_HEARTBEAT_SECONDS,
        ws_ping_timeout=WS_HEARTBEAT_SECONDS,
    )


if __name__ == "__main__":
    run()
