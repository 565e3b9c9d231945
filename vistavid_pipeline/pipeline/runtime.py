"""
Per-process collaborators handed to the workers.
"""
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

from loguru import logger

from ..config.common import BLOB_BACKEND_S3, PLATFORM_BUDGET_WARNING_RATIO, PLATFORM_TIMEOUT_SECONDS
from ..config.settings import PipelineSettings
from ..services.blob_store import BlobStore, LocalBlobStore, S3BlobStore
from ..services.classifier_client import ClassifierClient
from ..services.frame_extractor import FrameExtractor
from ..services.hls_encoder import HlsEncoder
from ..services.record_store import RecordStore, YamlRecordStore


@dataclass
class PipelineRuntime:
    """
    Everything a worker invocation needs besides its trigger event.

    One runtime is built per process and passed to each worker explicitly.
    Tests build one by hand with fakes in place of the classifier and the
    media toolchain.
    """

    settings: PipelineSettings
    blob_store: BlobStore
    record_store: RecordStore
    classifier: ClassifierClient
    frame_extractor: FrameExtractor
    encoder: HlsEncoder
    sleep: Callable[[float], None] = field(default=time.sleep)

    @classmethod
    def from_settings(cls, settings: PipelineSettings) -> "PipelineRuntime":
        if settings.blob_backend == BLOB_BACKEND_S3:
            blob_store: BlobStore = S3BlobStore(
                bucket_name=settings.bucket_name,
                public_url_template=settings.public_url_template,
                endpoint_url=settings.s3_endpoint_url,
                region=settings.s3_region,
                access_key=settings.s3_access_key,
                secret_key=settings.s3_secret_key,
            )
        else:
            blob_store = LocalBlobStore(settings.local_blob_root, bucket_name=settings.bucket_name)

        return cls(
            settings=settings,
            blob_store=blob_store,
            record_store=YamlRecordStore(settings.record_store_dir),
            classifier=ClassifierClient(
                url=settings.classifier_url,
                api_key=settings.classifier_api_key,
                unsafe_label=settings.unsafe_label,
                max_attempts=settings.classifier_max_attempts,
                default_wait=settings.classifier_default_wait_seconds,
                timeout=settings.classifier_timeout_seconds,
            ),
            frame_extractor=FrameExtractor(
                interval_seconds=settings.frame_interval_seconds,
                ffmpeg_bin=settings.ffmpeg_bin,
            ),
            encoder=HlsEncoder(
                segment_duration=settings.segment_duration_seconds,
                ffmpeg_bin=settings.ffmpeg_bin,
                ffprobe_bin=settings.ffprobe_bin,
            ),
        )

    def close(self) -> None:
        self.classifier.close()


def check_budget(video_id: str, elapsed: timedelta) -> None:
    """Warns when a run used most of the platform's execution time limit."""
    seconds = elapsed.total_seconds()
    if seconds >= PLATFORM_TIMEOUT_SECONDS * PLATFORM_BUDGET_WARNING_RATIO:
        logger.warning(
            f"[{video_id}] Run took {seconds:.0f}s of the {PLATFORM_TIMEOUT_SECONDS}s platform limit"
        )
