import asyncio
import json
import logging
from typing import Optional
import websockets
from websockets.exceptions import ConnectionClosed
from ..config import settings
from ..engine import SyncClient

logger = logging.getLogger(__name__)

class RelayConnection:
    """
    WebSocket link between one SyncClient and the relay.
    Messages are fire-and-forget: nothing is queued while disconnected, the
    relay re-sends the full state on every (re)connect.
    """

    def __init__(self, url: str, client: Optional[SyncClient] = None):
        self.url = url
        self.client = client
        self.running = True
        self.ws = None

    async def send(self, event: str, data: dict):
        if self.ws is None:
            logger.warning(f"Not connected, dropping {event}")
            return
        try:
            await self.ws.send(json.dumps({"event": event, "data": data}))
        except ConnectionClosed as e:
            logger.warning(f"Connection closed, dropping {event}: {e}")

    def dispatch(self, raw: str):
        try:
            frame = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring non-JSON frame: {raw[:200]!r}")
            return
        if not isinstance(frame, dict):
            logger.warning("Ignoring frame that is not an object")
            return

        event = frame.get("event")
        if event in ("sync_state", "control_event"):
            self.client.apply_server_state(frame.get("data"))
        else:
            logger.debug(f"Ignoring unknown event {event!r}")

    async def run(self):
        while self.running:
            try:
                async with websockets.connect(self.url) as ws:
                    self.ws = ws
                    logger.info(f"Connected to relay at {self.url}")
                    async for raw in ws:
                        self.dispatch(raw)
            except (OSError, ConnectionClosed) as e:
                logger.warning(f"Relay connection lost: {e}")
            except Exception as e:
                logger.error(f"Error in relay connection: {e}", exc_info=True)
            finally:
                self.ws = None

            if self.running:
                await asyncio.sleep(settings.RECONNECT_DELAY_SECONDS)

    async def close(self):
        self.running = False
        if self.ws is not None:
            await self.ws.close()
