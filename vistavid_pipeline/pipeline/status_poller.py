"""
The client side of the status contract.

After uploading, the mobile client polls the video record until the
pipeline reaches a state it can show. `StatusPoller` reproduces that loop so
operators (and the `watch` command) can follow a video the way the app does.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from ..config.common import (
    CLIENT_POLL_ATTEMPTS,
    CLIENT_POLL_INITIAL_DELAY_SECONDS,
    CLIENT_POLL_INTERVAL_SECONDS,
)
from ..domain.video_record import VideoRecord, VideoStatus
from ..services.record_store import RecordStore


class ClientUploadState(str, Enum):
    """What the app shows for an upload."""

    MODERATING = "moderating"
    BLOCKED = "blocked"
    FAILED = "failed"
    PASSED = "passed"
    PROCESSED = "processed"
    TIMED_OUT = "timed_out"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    ClientUploadState.MODERATING: "Checking content...",
    ClientUploadState.BLOCKED: "Content violates community guidelines",
    ClientUploadState.FAILED: "Content check failed, please try again",
    ClientUploadState.PASSED: "Content check passed!",
    ClientUploadState.PROCESSED: "Video is ready to stream",
    ClientUploadState.TIMED_OUT: "Content check timed out, please try again",
}


def interpret_status(status: VideoStatus, wait_for_processed: bool = False) -> Optional[ClientUploadState]:
    """
    Maps a record status to a final client state, or None to keep polling.

    With `wait_for_processed`, passing moderation is not final; the poller
    keeps going until the renditions are published (or transcoding fails).
    """
    if status == VideoStatus.BLOCKED:
        return ClientUploadState.BLOCKED
    if status in (VideoStatus.MODERATION_FAILED, VideoStatus.FAILED):
        return ClientUploadState.FAILED
    if status == VideoStatus.PROCESSED:
        return ClientUploadState.PROCESSED
    if status == VideoStatus.MODERATION_PASSED and not wait_for_processed:
        return ClientUploadState.PASSED
    return None


@dataclass
class PollOutcome:
    state: ClientUploadState
    record: Optional[VideoRecord]
    attempts: int


class StatusPoller:
    def __init__(
        self,
        record_store: RecordStore,
        attempts: int = CLIENT_POLL_ATTEMPTS,
        interval: float = CLIENT_POLL_INTERVAL_SECONDS,
        initial_delay: float = CLIENT_POLL_INITIAL_DELAY_SECONDS,
        wait_for_processed: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.record_store = record_store
        self.attempts = attempts
        self.interval = interval
        self.initial_delay = initial_delay
        self.wait_for_processed = wait_for_processed
        self._sleep = sleep

    def poll(self, video_id: str) -> PollOutcome:
        """
        Polls the record of `video_id` until a final state or the attempt limit.

        A missing record is treated like a pending one: the record may not be
        visible yet right after the upload.
        """
        if self.initial_delay > 0:
            self._sleep(self.initial_delay)

        record: Optional[VideoRecord] = None
        for attempt in range(1, self.attempts + 1):
            record = self.record_store.get(video_id)
            if record is None:
                logger.info(f"[{video_id}] Video record not ready (attempt {attempt})")
            else:
                state = interpret_status(record.status, self.wait_for_processed)
                logger.debug(f"[{video_id}] Status check {attempt}: '{record.status.value}'")
                if state is not None:
                    return PollOutcome(state=state, record=record, attempts=attempt)
            if attempt < self.attempts:
                self._sleep(self.interval)

        logger.warning(f"[{video_id}] Status check timed out after {self.attempts} attempts")
        return PollOutcome(state=ClientUploadState.TIMED_OUT, record=record, attempts=self.attempts)
