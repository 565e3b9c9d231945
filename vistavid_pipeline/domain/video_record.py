"""
The video record shared by the workers and the mobile client.

A record is created by the upload-accepting side in status `uploading`, then
mutated by the two workers. Each worker owns a disjoint set of statuses and
builds its updates through its own transition class. Whether a status may be
written over the record's current one is decided by `VideoStatus.can_become`,
which the record store checks under its update lock, so a worker can never
revert a record to an earlier state.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, FrozenSet, List, Optional

from ..config.common import HLS_PREFIX, RAW_VIDEO_EXTENSION, RAW_VIDEO_PREFIX
from .exceptions import InvalidStatusTransitionException


class VideoStatus(str, Enum):
    """
    Pipeline progress of a video, as persisted in the record's `status` field.

    `UPLOADING` and `UPLOADED` are written by the client. The moderation worker
    writes `BLOCKED`, `MODERATION_PASSED` or `MODERATION_FAILED`; the transcode
    worker writes `PROCESSED` or `FAILED`.
    """

    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    BLOCKED = "blocked"
    MODERATION_PASSED = "moderation_passed"
    MODERATION_FAILED = "moderation_failed"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def is_moderation_outcome(self) -> bool:
        return self in MODERATION_STATUSES

    @property
    def is_transcode_outcome(self) -> bool:
        return self in TRANSCODE_STATUSES

    def can_become(self, target: "VideoStatus") -> bool:
        """True if a worker may replace this status with `target`."""
        return self in _PREDECESSORS.get(target, frozenset())


# Client-written statuses: the video has not been moderated yet.
PRE_MODERATION_STATUSES: FrozenSet[VideoStatus] = frozenset(
    {VideoStatus.UPLOADING, VideoStatus.UPLOADED}
)
MODERATION_STATUSES: FrozenSet[VideoStatus] = frozenset(
    {VideoStatus.BLOCKED, VideoStatus.MODERATION_PASSED, VideoStatus.MODERATION_FAILED}
)
TRANSCODE_STATUSES: FrozenSet[VideoStatus] = frozenset(
    {VideoStatus.PROCESSED, VideoStatus.FAILED}
)

# Statuses each worker-written status may replace. Nothing moves back to a
# client status, a moderation decision is taken once, and neither `blocked`
# nor `processed` is ever overwritten.
_TRANSCODABLE: FrozenSet[VideoStatus] = PRE_MODERATION_STATUSES | {
    VideoStatus.MODERATION_PASSED, VideoStatus.MODERATION_FAILED, VideoStatus.FAILED,
}
_PREDECESSORS: Dict[VideoStatus, FrozenSet[VideoStatus]] = {
    VideoStatus.BLOCKED: PRE_MODERATION_STATUSES,
    VideoStatus.MODERATION_PASSED: PRE_MODERATION_STATUSES,
    VideoStatus.MODERATION_FAILED: PRE_MODERATION_STATUSES,
    VideoStatus.PROCESSED: _TRANSCODABLE,
    VideoStatus.FAILED: _TRANSCODABLE,
}


def check_transition(video_id: str, current: VideoStatus, target: VideoStatus) -> None:
    """
    Raises:
        InvalidStatusTransitionException: If `current` may not become `target`.
    """
    if not current.can_become(target):
        raise InvalidStatusTransitionException(
            f"Video '{video_id}' may not move from '{current.value}' to '{target.value}'"
        )

# Persisted field names, camelCase as the mobile client reads them.
FIELD_STATUS = "status"
FIELD_MODERATION_SCORE = "moderationScore"
FIELD_HLS_URL = "hlsUrl"
FIELD_QUALITIES = "qualities"
FIELD_ERROR = "error"


def raw_object_key(video_id: str) -> str:
    """Blob key of the raw upload for `video_id`, e.g. `videos/abc.mp4`."""
    return f"{RAW_VIDEO_PREFIX}{video_id}{RAW_VIDEO_EXTENSION}"


def video_id_from_object(object_name: str) -> str:
    """Video id encoded in a raw object name: the file name without extension."""
    return PurePosixPath(object_name).stem


def hls_prefix(video_id: str) -> str:
    """Blob prefix under which the renditions of `video_id` are published."""
    return f"{HLS_PREFIX}{video_id}"


@dataclass
class VideoRecord:
    """
    One uploaded video.

    Attributes:
        id: Stable identifier; also names the raw object (`videos/{id}.mp4`).
        status: Pipeline progress. The single source of truth for the client.
        moderation_score: Highest unsafe-content score seen by moderation.
        hls_url: Public URL of the master manifest, set only once processed.
        qualities: Names of the renditions that were produced, in preset order.
        error: Human-readable reason for a failure or block.
        extra: Any other persisted fields (owner, description, ...), carried
               through untouched.
    """

    id: str
    status: VideoStatus = VideoStatus.UPLOADING
    moderation_score: Optional[float] = None
    hls_url: Optional[str] = None
    qualities: List[str] = field(default_factory=list)
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, video_id: str, data: Dict[str, Any]) -> "VideoRecord":
        known = {FIELD_STATUS, FIELD_MODERATION_SCORE, FIELD_HLS_URL, FIELD_QUALITIES, FIELD_ERROR, "id"}
        score = data.get(FIELD_MODERATION_SCORE)
        return cls(
            id=video_id,
            status=VideoStatus(data.get(FIELD_STATUS, VideoStatus.UPLOADING.value)),
            moderation_score=float(score) if score is not None else None,
            hls_url=data.get(FIELD_HLS_URL),
            qualities=list(data.get(FIELD_QUALITIES) or []),
            error=data.get(FIELD_ERROR),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        data[FIELD_STATUS] = self.status.value
        if self.moderation_score is not None:
            data[FIELD_MODERATION_SCORE] = self.moderation_score
        if self.hls_url is not None:
            data[FIELD_HLS_URL] = self.hls_url
        if self.qualities:
            data[FIELD_QUALITIES] = list(self.qualities)
        if self.error is not None:
            data[FIELD_ERROR] = self.error
        return data

    @property
    def raw_object_key(self) -> str:
        return raw_object_key(self.id)


# A partial update: persisted field name -> new value.
RecordUpdate = Dict[str, Any]


def update_status(fields: RecordUpdate) -> Optional[VideoStatus]:
    """Status written by a partial update, or None if it leaves the status alone."""
    value = fields.get(FIELD_STATUS)
    return VideoStatus(value) if value is not None else None


class ModerationTransitions:
    """Builds the only record updates the moderation worker is allowed to write."""

    @staticmethod
    def passed(score: float) -> RecordUpdate:
        return {FIELD_STATUS: VideoStatus.MODERATION_PASSED.value, FIELD_MODERATION_SCORE: score}

    @staticmethod
    def blocked(score: float, error: str) -> RecordUpdate:
        return {FIELD_STATUS: VideoStatus.BLOCKED.value, FIELD_MODERATION_SCORE: score, FIELD_ERROR: error}

    @staticmethod
    def failed(error: str, score: float = 0.0) -> RecordUpdate:
        return {FIELD_STATUS: VideoStatus.MODERATION_FAILED.value, FIELD_MODERATION_SCORE: score, FIELD_ERROR: error}

    @staticmethod
    def score_only(score: float) -> RecordUpdate:
        """Kept when the record has already moved past moderation."""
        return {FIELD_MODERATION_SCORE: score}


class TranscodeTransitions:
    """Builds the only record updates the transcode worker is allowed to write."""

    @staticmethod
    def processed(hls_url: str, qualities: List[str]) -> RecordUpdate:
        if not qualities:
            raise InvalidStatusTransitionException(
                "A processed video must list at least one quality"
            )
        return {
            FIELD_STATUS: VideoStatus.PROCESSED.value,
            FIELD_HLS_URL: hls_url,
            FIELD_QUALITIES: list(qualities),
        }

    @staticmethod
    def failed(error: str) -> RecordUpdate:
        return {FIELD_STATUS: VideoStatus.FAILED.value, FIELD_ERROR: error}
