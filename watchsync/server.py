import asyncio
import json
import logging
from typing import Any, Optional, Set
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from .config import settings
from .models import ControlEvent, Envelope
from .state import SessionStore

logger = logging.getLogger(__name__)

class SessionHub:
    """
    Single writer for the shared Session plus the set of connected viewers.
    Apply and broadcast happen under one lock, so every viewer sees events
    in the same order the store applied them.
    """

    def __init__(self, store: Optional[SessionStore] = None):
        self.store = store or SessionStore()
        self.connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def join(self, ws: WebSocket):
        self.connections.add(ws)
        snapshot = self.store.snapshot()
        await self._send(ws, "sync_state", snapshot.to_wire())
        logger.info(f"Viewer connected ({len(self.connections)} total)")

    def leave(self, ws: WebSocket):
        if ws in self.connections:
            self.connections.discard(ws)
            logger.info(f"Viewer disconnected ({len(self.connections)} total)")

    async def handle_control(self, payload: Any) -> Optional[ControlEvent]:
        async with self._lock:
            event = self.store.handle_raw(payload)
            if event is not None:
                await self.broadcast("control_event", event.to_wire())
            return event

    async def broadcast(self, event: str, data: dict):
        # Sender included: it suppresses its own echo locally
        for ws in list(self.connections):
            try:
                await self._send(ws, event, data)
            except Exception as e:
                logger.warning(f"Dropping viewer after failed send: {e}")
                self.leave(ws)

    async def _send(self, ws: WebSocket, event: str, data: dict):
        await ws.send_text(json.dumps({"event": event, "data": data}))

    async def serve(self, ws: WebSocket):
        await ws.accept()
        try:
            await self.join(ws)
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    logger.warning("Ignoring non-text frame")
                    continue
                try:
                    envelope = Envelope.model_validate_json(raw)
                except ValidationError:
                    logger.warning(f"Ignoring malformed frame: {raw[:200]!r}")
                    continue

                if envelope.event == "control":
                    await self.handle_control(envelope.data)
                else:
                    logger.debug(f"Ignoring unknown event {envelope.event!r}")
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"Connection error: {e}", exc_info=True)
        finally:
            self.leave(ws)

app = FastAPI(title="watchsync relay")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
hub = SessionHub()

@app.websocket(settings.WS_PATH)
async def relay(websocket: WebSocket):
    await hub.serve(websocket)

@app.get("/healthz")
def healthz():
    return {"status": "ok", "viewers": len(hub.connections)}

@app.get("/state")
def state():
    return hub.store.snapshot().to_wire()
