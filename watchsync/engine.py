import asyncio
import logging
import re
import uuid
from typing import Any, Awaitable, Callable, Optional, Set
from pydantic import ValidationError
from .config import settings
from .models import ControlEvent, ControlMessage, ControlType, PlayerState, SyncPhase
from .player import Player, SafePlayer

logger = logging.getLogger(__name__)

VIDEO_ID_RE = re.compile(r"(?:v=|/)([a-zA-Z0-9_-]{11})(?:&|$)")

SendFn = Callable[[str, dict], Awaitable[None]]

class InvalidVideoUrl(ValueError):
    pass

def extract_video_id(url: str) -> Optional[str]:
    match = VIDEO_ID_RE.search(url or "")
    return match.group(1) if match else None

class SyncClient:
    """
    Keeps one local player in step with the relay.

    Three inputs arrive in no guaranteed order: player readiness, server
    pushes and local player changes. Server-applied changes open a
    suppression window so the player's own notifications are not sent back
    as user actions.
    """

    def __init__(self, player: SafePlayer, send: SendFn, origin: Optional[str] = None):
        self.player = player
        self.send = send
        self.origin = origin or uuid.uuid4().hex
        self.phase = SyncPhase.UNINITIALIZED
        self.pending_state: Optional[ControlEvent] = None
        self.has_synced_once = False
        self.has_interacted = False
        self._seq = 0
        self._last_sent_seq: Optional[int] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def player_ready(self) -> bool:
        return self.phase != SyncPhase.UNINITIALIZED

    @property
    def suppressed(self) -> bool:
        return self.phase in (SyncPhase.APPLYING_SERVER_UPDATE, SyncPhase.SENDING_LOCAL_CONTROL)

    def _suppress(self, phase: SyncPhase, seconds: float):
        self.phase = phase
        # Not cancelled if another window opens meanwhile
        asyncio.get_running_loop().call_later(seconds, self._release)

    def _release(self):
        if not self.suppressed:
            return
        self.phase = SyncPhase.IDLE if self.has_synced_once else SyncPhase.AWAITING_FIRST_SYNC
        logger.debug("Suppression released")

    def _mark_synced(self):
        self.has_synced_once = True
        if self.phase == SyncPhase.AWAITING_FIRST_SYNC:
            self.phase = SyncPhase.IDLE

    # Player -> network

    def on_player_ready(self, player: Optional[Player] = None):
        if player is not None:
            self.player.player = player
        if self.phase == SyncPhase.UNINITIALIZED:
            self.phase = SyncPhase.AWAITING_FIRST_SYNC
        logger.info("Player ready")

        if self.pending_state is not None:
            pending, self.pending_state = self.pending_state, None
            logger.info("Applying pending server state")
            self.apply_server_state(pending)

    def notify_state_change(self, state: int):
        """Synchronous hook for the player's change notification."""
        task = asyncio.get_running_loop().create_task(self.on_local_state_change(state))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def on_local_state_change(self, state: int) -> Optional[ControlMessage]:
        if not self.player_ready:
            return None
        if self.suppressed:
            logger.debug(f"Suppressed state change {state}")
            return None

        try:
            state = PlayerState(state)
        except ValueError:
            return None
        if state not in (PlayerState.PLAYING, PlayerState.PAUSED):
            return None

        # Let the player settle so the reported time is accurate
        await asyncio.sleep(settings.STATE_CHANGE_DEBOUNCE_SECONDS)

        if not self.has_synced_once:
            logger.debug("Waiting for initial sync before emitting")
            return None
        if self.suppressed:
            logger.debug("Suppression active during emit, skipping")
            return None

        current_time = self.player.current_time()
        video_id = self.player.video_id()
        player_state = self.player.player_state()

        # "Video just loaded" is not "user paused at 0s"
        if (
            not self.has_interacted
            and current_time == 0
            and player_state in (PlayerState.BUFFERING, PlayerState.CUED)
        ):
            logger.debug("Ignoring initial buffering state at time 0")
            return None

        self.has_interacted = True

        control_type = ControlType.PLAY if state == PlayerState.PLAYING else ControlType.PAUSE
        msg = ControlMessage(type=control_type.value, target_time=current_time, video_id=video_id)
        return await self._emit(msg)

    async def send_control(self, control_type: str) -> Optional[ControlMessage]:
        """Manual play/pause, independent of player change detection."""
        if control_type not in (ControlType.PLAY.value, ControlType.PAUSE.value):
            logger.warning(f"send_control: unsupported type {control_type!r}")
            return None
        if not self.player_ready:
            return None

        current_time = self.player.current_time()
        video_id = self.player.video_id()
        if current_time == 0:
            logger.warning("Cannot send control - time is 0. Use the player controls first.")
            return None

        # Apply locally first; the resulting player notification must not go out again
        self._suppress(SyncPhase.SENDING_LOCAL_CONTROL, settings.MANUAL_SUPPRESS_SECONDS)
        if control_type == ControlType.PLAY.value:
            self.player.play()
        else:
            self.player.pause()

        msg = ControlMessage(type=control_type, target_time=current_time, video_id=video_id)
        return await self._emit(msg)

    async def change_video(self, url: str) -> ControlMessage:
        video_id = extract_video_id(url)
        if not video_id:
            raise InvalidVideoUrl(f"Invalid YouTube URL: {url!r}")
        msg = ControlMessage(type=ControlType.CHANGE_VIDEO.value, target_time=0.0, video_id=video_id)
        return await self._emit(msg)

    async def _emit(self, msg: ControlMessage) -> ControlMessage:
        if settings.ECHO_GUARD == "sequence":
            self._seq += 1
            msg.origin = self.origin
            msg.seq = self._seq
            self._last_sent_seq = self._seq

        logger.info(f"Emitting {msg.type} at {msg.target_time:.2f}s (video {msg.video_id!r})")
        await self.send("control", msg.to_wire())
        return msg

    # Network -> player

    def _is_own_echo(self, state: ControlEvent) -> bool:
        # change_video never touches the local player before the echo
        return (
            state.type in (ControlType.PLAY.value, ControlType.PAUSE.value)
            and state.origin == self.origin
            and state.seq is not None
            and state.seq == self._last_sent_seq
        )

    def apply_server_state(self, data: Any) -> bool:
        """
        Applies a sync_state or control_event payload to the local player.
        Returns True if the player was driven.
        """
        if isinstance(data, ControlEvent):
            state = data
        else:
            try:
                state = ControlEvent.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed server state: {e.error_count()} validation error(s)")
                return False

        logger.debug(f"Received server state {state.to_wire()}")

        if not self.player_ready:
            logger.info("Player not ready, queuing state")
            self.pending_state = state
            return False

        if settings.ECHO_GUARD == "sequence" and self._is_own_echo(state):
            # Already applied locally when it was sent
            self.player.remember_time(state.time)
            self._mark_synced()
            logger.debug(f"Skipping echo of own control seq={state.seq}")
            return False

        if state.origin != self.origin:
            # A foreign write landed after our last send; its echo is no
            # longer the latest state we have shown, so it must be applied
            self._last_sent_seq = None

        current_id = self.player.video_id()
        current_time = self.player.current_time()

        self.player.remember_time(state.time)
        self._mark_synced()
        self._suppress(SyncPhase.APPLYING_SERVER_UPDATE, settings.APPLY_SUPPRESS_SECONDS)

        if state.video_id and state.video_id != current_id:
            self.player.reset_time(state.time)
            self.player.load(state.video_id, state.time)
        elif abs(current_time - state.time) > settings.SYNC_TOLERANCE_SECONDS:
            self.player.seek(state.time)

        if state.playing:
            self.player.play()
        else:
            self.player.pause()
        return True
