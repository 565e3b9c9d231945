"""
Trigger payloads delivered to the workers by the event platform.

Each invocation receives exactly one event. Events may be delivered more than
once, so both workers check them against the record before doing any work.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config.common import HLS_PREFIX, RAW_VIDEO_PREFIX
from .exceptions import InvalidEventException
from .video_record import VideoStatus, video_id_from_object


@dataclass(frozen=True)
class RecordCreatedEvent:
    """A video record was created. Drives the moderation worker."""

    video_id: str
    status: Optional[str]

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RecordCreatedEvent":
        if not payload.get("id"):
            raise InvalidEventException("Record created event is missing 'id'")
        return cls(video_id=str(payload["id"]), status=payload.get("status"))

    @property
    def is_new_upload(self) -> bool:
        return self.status == VideoStatus.UPLOADING.value


@dataclass(frozen=True)
class ObjectFinalizedEvent:
    """A blob finished uploading. Drives the transcode worker."""

    name: str
    content_type: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ObjectFinalizedEvent":
        if not payload.get("name"):
            raise InvalidEventException("Object finalized event is missing 'name'")
        return cls(name=str(payload["name"]), content_type=payload.get("contentType"))

    def is_raw_video(self) -> bool:
        """
        True only for fresh raw uploads.

        Renditions and manifests are written back into the same bucket, so
        anything under an `hls/` namespace is excluded to keep the transcode
        worker from triggering itself.
        """
        if not self.name.startswith(RAW_VIDEO_PREFIX):
            return False
        if not self.content_type or "video" not in self.content_type:
            return False
        return HLS_PREFIX not in self.name

    @property
    def video_id(self) -> str:
        return video_id_from_object(self.name)
