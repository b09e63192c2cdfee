from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket):
    manager = websocket.app.state.broadcaster
    sub = await manager.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            await manager.handle_text(sub, text)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket receive loop failed")
    finally:
        manager.disconnect(sub)
