from fastapi import Request

from nearby.engine.store import PresenceStore


# --- FastAPI dependency ---
def get_store(request: Request) -> PresenceStore:
    return request.app.state.store
