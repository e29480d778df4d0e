import logging
from typing import Any, Optional
from pydantic import ValidationError
from .models import ControlEvent, ControlMessage, ControlType, Session, now_ms

logger = logging.getLogger(__name__)

class SessionStore:
    """Owns the single shared playback Session.

    Callers never get a live reference: reads go through snapshot() and
    writes through apply_control().
    """

    def __init__(self):
        self._session = Session()

    def snapshot(self) -> Session:
        return self._session.model_copy()

    def handle_raw(self, payload: Any) -> Optional[ControlEvent]:
        """Validate an untrusted control payload and apply it."""
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring control payload of type {type(payload).__name__}")
            return None
        try:
            msg = ControlMessage.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed control: {e.error_count()} validation error(s) in {payload}")
            return None
        return self.apply_control(msg)

    def apply_control(self, msg: ControlMessage) -> Optional[ControlEvent]:
        """
        Applies a control message (last write wins).
        Returns the event to broadcast to every viewer, or None if ignored.
        """
        s = self._session
        logger.info(f"Received control: type={msg.type} targetTime={msg.target_time} videoId={msg.video_id}")

        if msg.type == ControlType.CHANGE_VIDEO.value:
            # Always a fresh start, even when the same id is sent again
            s.video_id = msg.video_id or ""
            s.time = 0.0
            s.playing = False

        elif msg.type in (ControlType.PLAY.value, ControlType.PAUSE.value):
            if msg.target_time is None:
                logger.warning(f"Ignoring {msg.type} without targetTime")
                return None
            s.playing = msg.type == ControlType.PLAY.value
            s.time = msg.target_time
            if msg.video_id:
                s.video_id = msg.video_id

        else:
            logger.warning(f"Ignoring unknown control type: {msg.type!r}")
            return None

        s.last_update_ts = now_ms()

        event = ControlEvent(
            **s.model_dump(),
            type=msg.type,
            origin=msg.origin,
            seq=msg.seq,
        )
        logger.info(f"Broadcasting: videoId={s.video_id!r} playing={s.playing} time={s.time:.2f} type={msg.type}")
        return event
