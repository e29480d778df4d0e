import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional
from .models import PlayerState

logger = logging.getLogger(__name__)

class Player(ABC):
    """Capability exposed by the embedded video player."""

    @abstractmethod
    def get_video_id(self) -> str: ...

    @abstractmethod
    def get_current_time(self) -> float: ...

    @abstractmethod
    def get_player_state(self) -> int: ...

    @abstractmethod
    def play_video(self): ...

    @abstractmethod
    def pause_video(self): ...

    @abstractmethod
    def load_video_by_id(self, video_id: str, start_seconds: float = 0.0): ...

    @abstractmethod
    def seek_to(self, seconds: float, allow_seek_ahead: bool = True): ...

@dataclass
class PlayerResult:
    ok: bool
    value: Any = None
    error: Optional[str] = None

class SafePlayer:
    """
    Calls into a player that may be missing, half-initialized, or flaky.
    Every call yields a PlayerResult; nothing raises to the caller.
    """

    def __init__(self, player: Optional[Any] = None):
        self.player = player
        self.last_known_time = 0.0

    def call(self, method: str, *args) -> PlayerResult:
        if self.player is None:
            logger.warning(f"{method}: no player")
            return PlayerResult(ok=False, error="no player")

        fn = getattr(self.player, method, None)
        if not callable(fn):
            logger.warning(f"{method}: not available on player")
            return PlayerResult(ok=False, error="unavailable")

        try:
            return PlayerResult(ok=True, value=fn(*args))
        except Exception as e:
            logger.warning(f"{method} failed: {e}")
            return PlayerResult(ok=False, error=str(e))

    # Commands

    def play(self) -> PlayerResult:
        return self.call("play_video")

    def pause(self) -> PlayerResult:
        return self.call("pause_video")

    def load(self, video_id: str, start: float = 0.0) -> PlayerResult:
        return self.call("load_video_by_id", video_id, start or 0.0)

    def seek(self, seconds: float) -> PlayerResult:
        return self.call("seek_to", seconds or 0.0, True)

    # Reads

    def video_id(self) -> str:
        res = self.call("get_video_id")
        if not res.ok or not isinstance(res.value, str):
            return ""
        return res.value

    def player_state(self) -> Optional[int]:
        res = self.call("get_player_state")
        return res.value if res.ok else None

    def remember_time(self, seconds: Optional[float]):
        if _valid_time(seconds) and seconds > 0:
            self.last_known_time = float(seconds)

    def reset_time(self, seconds: float = 0.0):
        # New video: the old position means nothing anymore
        self.last_known_time = float(seconds) if _valid_time(seconds) and seconds > 0 else 0.0

    def current_time(self) -> float:
        """
        Player position in seconds.
        Players often report 0 right after a transition, so a zero read is
        retried once; zero, invalid or negative reads fall back to the last
        positive value.
        """
        res = self.call("get_current_time")
        if not res.ok:
            return self.last_known_time

        t = res.value
        if _valid_time(t) and t == 0:
            res = self.call("get_current_time")
            t = res.value if res.ok else None

        if not _valid_time(t) or t <= 0:
            return self.last_known_time

        self.last_known_time = float(t)
        return self.last_known_time

def _valid_time(t: Any) -> bool:
    if isinstance(t, bool) or not isinstance(t, (int, float)):
        return False
    return not math.isnan(t) and not math.isinf(t)

class SimulatedPlayer(Player):
    """
    Headless player with a wall-clock playhead.
    Emits state changes through on_state_change the way an embedded player does.
    """

    def __init__(self, on_state_change: Optional[Callable[[PlayerState], None]] = None, clock: Callable[[], float] = time.monotonic):
        self.on_state_change = on_state_change
        self.clock = clock
        self.video_id = ""
        self.state = PlayerState.UNSTARTED
        self._position = 0.0
        self._anchor: Optional[float] = None  # clock value when playback (re)started

    def _set_state(self, state: PlayerState):
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _freeze(self):
        self._position = self.get_current_time()
        self._anchor = None

    def get_video_id(self) -> str:
        return self.video_id

    def get_current_time(self) -> float:
        if self._anchor is None:
            return self._position
        return self._position + (self.clock() - self._anchor)

    def get_player_state(self) -> int:
        return int(self.state)

    def play_video(self):
        if not self.video_id or self.state == PlayerState.PLAYING:
            return
        self._anchor = self.clock()
        self._set_state(PlayerState.PLAYING)

    def pause_video(self):
        if self.state != PlayerState.PLAYING:
            return
        self._freeze()
        self._set_state(PlayerState.PAUSED)

    def load_video_by_id(self, video_id: str, start_seconds: float = 0.0):
        self.video_id = video_id
        self._position = max(0.0, start_seconds)
        self._anchor = None
        self._set_state(PlayerState.BUFFERING)
        # Loading autoplays
        self.play_video()

    def seek_to(self, seconds: float, allow_seek_ahead: bool = True):
        self._position = max(0.0, seconds)
        if self._anchor is not None:
            self._anchor = self.clock()
