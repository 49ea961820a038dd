from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

import config
from errors import RecordingForbiddenError, RecordingNotFoundError
from non_verbal.pose import PoseTracker, drawable_segments
from schemas import PoseFrame, PoseFramesResponse, PoseSummary

logger = logging.getLogger(__name__)


@dataclass
class Recording:
    id: str
    owner_id: str
    started_at: float
    last_seen: float
    tracker: PoseTracker = field(default_factory=PoseTracker)


class RecordingRegistry:
    """
    In-progress recordings, one pose tracker each.

    State lives only until the recording is aborted, consumed by an analysis,
    or left idle for longer than `idle_seconds`. Each user keeps at most
    `max_per_user` open recordings; starting another drops their oldest.
    Nothing here is ever persisted.
    """

    def __init__(
        self,
        idle_seconds: float = config.RECORDING_IDLE_SECONDS,
        max_per_user: int = config.MAX_RECORDINGS_PER_USER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_seconds = idle_seconds
        self.max_per_user = max(1, max_per_user)
        self.clock = clock
        self._recordings: dict[str, Recording] = {}

    def __len__(self) -> int:
        return len(self._recordings)

    def evict_stale(self) -> int:
        """Drop recordings idle past the limit. Returns how many were dropped."""
        cutoff = self.clock() - self.idle_seconds
        stale = [r.id for r in self._recordings.values() if r.last_seen < cutoff]
        for recording_id in stale:
            del self._recordings[recording_id]
        if stale:
            logger.info("Evicted %d idle recordings", len(stale))
        return len(stale)

    def start(self, owner_id: str) -> Recording:
        self.evict_stale()

        owned = sorted(
            (r for r in self._recordings.values() if r.owner_id == owner_id),
            key=lambda r: r.started_at,
        )
        for oldest in owned[: len(owned) - self.max_per_user + 1]:
            del self._recordings[oldest.id]
            logger.info("Dropped recording %s; user has too many open", oldest.id)

        now = self.clock()
        recording = Recording(id=uuid.uuid4().hex, owner_id=owner_id, started_at=now, last_seen=now)
        self._recordings[recording.id] = recording
        logger.info("Started recording %s", recording.id)
        return recording

    def get(self, recording_id: str, owner_id: str) -> Recording:
        self.evict_stale()
        recording = self._recordings.get(recording_id)
        if recording is None:
            raise RecordingNotFoundError(recording_id)
        if recording.owner_id != owner_id:
            raise RecordingForbiddenError(recording_id)
        recording.last_seen = self.clock()
        return recording

    def push_frames(
        self,
        recording_id: str,
        owner_id: str,
        frames: list[PoseFrame],
        width: float,
        height: float,
    ) -> PoseFramesResponse:
        recording = self.get(recording_id, owner_id)
        for frame in frames:
            recording.tracker.update(frame, width, height)
        return PoseFramesResponse(
            frames=recording.tracker.frame_count,
            metrics=recording.tracker.metrics,
            segments=drawable_segments(frames[-1]) if frames else [],
        )

    def release(self, recording_id: str, owner_id: str) -> PoseSummary | None:
        """Remove the recording and return its final pose summary."""
        recording = self.get(recording_id, owner_id)
        del self._recordings[recording_id]
        return recording.tracker.summary()

    def abort(self, recording_id: str, owner_id: str) -> None:
        self.get(recording_id, owner_id)
        del self._recordings[recording_id]
        logger.info("Aborted recording %s; pose state discarded", recording_id)
