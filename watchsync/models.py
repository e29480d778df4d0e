import time
from enum import Enum, IntEnum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

def now_ms() -> int:
    return int(time.time() * 1000)

class ControlType(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    CHANGE_VIDEO = "change_video"

class PlayerState(IntEnum):
    """State values reported by the embedded player's change notification."""
    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5

class SyncPhase(str, Enum):
    UNINITIALIZED = "uninitialized"              # player not ready yet
    AWAITING_FIRST_SYNC = "awaiting_first_sync"  # ready, nothing authoritative received
    IDLE = "idle"
    APPLYING_SERVER_UPDATE = "applying_server_update"
    SENDING_LOCAL_CONTROL = "sending_local_control"

class WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

class Session(WireModel):
    video_id: str = Field(default="", alias="videoId")
    playing: bool = False
    time: float = 0.0
    last_update_ts: int = Field(default_factory=now_ms, alias="lastUpdateTs")

    @field_validator("video_id", mode="before")
    @classmethod
    def _none_video_id(cls, v):
        return "" if v is None else v

    @field_validator("time", mode="before")
    @classmethod
    def _none_time(cls, v):
        return 0.0 if v is None else v

class ControlMessage(WireModel):
    type: str
    target_time: Optional[float] = Field(default=None, alias="targetTime", ge=0, allow_inf_nan=False)
    video_id: Optional[str] = Field(default=None, alias="videoId")

    # Sender tag, passed through untouched by the relay
    origin: Optional[str] = None
    seq: Optional[int] = None

class ControlEvent(Session):
    """Session snapshot as pushed to viewers.

    ``type`` is absent for ``sync_state`` and carries the originating control
    type for ``control_event``.
    """
    type: Optional[str] = None
    origin: Optional[str] = None
    seq: Optional[int] = None

class Envelope(BaseModel):
    event: str
    data: dict = Field(default_factory=dict)
