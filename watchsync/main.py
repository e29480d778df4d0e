import asyncio
import logging
import signal
import sys
import uvicorn

from .config import settings
from .player import SafePlayer, SimulatedPlayer
from .engine import SyncClient
from .clients.relay_client import RelayConnection
from . import server

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Silence noisy libraries
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("websockets").setLevel(logging.WARNING)

logger = logging.getLogger("main")

class RelayService:
    async def start(self):
        logger.info(f"Relay listening on {settings.HOST}:{settings.PORT}{settings.WS_PATH}")
        config = uvicorn.Config(server.app, host=settings.HOST, port=settings.PORT, log_level="warning")
        await uvicorn.Server(config).serve()

class ViewerService:
    """Headless viewer: a simulated player kept in sync with the relay."""

    def __init__(self):
        self.running = True
        self.player = SimulatedPlayer()
        self.connection = RelayConnection(settings.RELAY_URL)
        self.client = SyncClient(SafePlayer(), self.connection.send)
        self.connection.client = self.client

    async def report_loop(self):
        while self.running:
            await asyncio.sleep(settings.VIEWER_STATUS_INTERVAL_SECONDS)
            logger.info(
                f"Viewer status: phase={self.client.phase.value} "
                f"video={self.player.get_video_id()!r} "
                f"time={self.player.get_current_time():.1f}s "
                f"state={self.player.state.name}"
            )

    async def start(self):
        # Player notifications need the running loop
        self.player.on_state_change = self.client.notify_state_change
        self.client.on_player_ready(self.player)

        tasks = [
            asyncio.create_task(self.connection.run()),
            asyncio.create_task(self.report_loop()),
        ]
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            self.running = False
            await self.connection.close()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

if __name__ == "__main__":
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = ViewerService() if settings.MODE == "viewer" else RelayService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
