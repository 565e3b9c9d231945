"""
The transcode worker.

Triggered when a raw upload is finalized in the blob store. It encodes one
HLS rendition per quality preset, writes a master playlist over them,
publishes the whole tree under `hls/<video_id>/` and marks the video
`processed`. Publication is all-or-nothing: a failed preset, upload or record
update leaves no renditions behind and marks the video `failed`.
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import List, Optional

from loguru import logger

from ..config.common import SOURCE_FILE_NAME, TRANSCODE_SCRATCH_NAMESPACE
from ..config.transcode import MASTER_PLAYLIST_NAME, OUTPUT_DIR_NAME
from ..domain.events import ObjectFinalizedEvent
from ..domain.exceptions import TranscodeException
from ..domain.rendition import Rendition
from ..domain.video_record import TranscodeTransitions, VideoStatus, hls_prefix
from ..utils.format_utils import format_timedelta, formatted_size
from ..utils.manifest import build_master_manifest, cache_control_for, content_type_for, parse_master_manifest
from ..utils.workdir import scratch_workdir
from .runtime import PipelineRuntime, check_budget

# Records in these statuses are never transcoded again on redelivery.
SKIP_STATUSES = (VideoStatus.PROCESSED, VideoStatus.BLOCKED)


@dataclass
class TranscodeResult:
    video_id: str
    hls_url: str
    qualities: List[str]
    uploaded_keys: List[str] = field(default_factory=list)


class TranscodeWorker:
    """
    Converts raw uploads into published HLS renditions.

    The preset order comes from the settings and is never reordered, so the
    master playlist lists renditions in the same order on every run. Clients
    use the first entry as their default quality.
    """

    def __init__(self, runtime: PipelineRuntime):
        self.runtime = runtime
        self.settings = runtime.settings

    def handle(self, event: ObjectFinalizedEvent) -> Optional[TranscodeResult]:
        """
        Transcodes and publishes the object behind `event`.

        Returns:
            The result, or None when the event was ignored: not a raw video,
            no record for it, or a record that is already `processed` or
            `blocked` (redelivered finalize event).

        Raises:
            Any exception raised while transcoding or publishing, after
            `failed` has been recorded on the video. If the video was blocked
            while it was being transcoded, the `processed` write is refused
            with `InvalidStatusTransitionException`, the renditions are
            removed again and the record keeps `blocked`.
        """
        if not event.is_raw_video():
            logger.info(f"Skipping {event.name} ({event.content_type}): not a raw video upload")
            return None

        video_id = event.video_id
        record = self.runtime.record_store.get(video_id)
        if record is None:
            logger.warning(f"[{video_id}] No video record for {event.name}, skipping transcode")
            return None
        if record.status in SKIP_STATUSES:
            logger.info(f"[{video_id}] Skipping transcode for video with status '{record.status.value}'")
            return None

        started = datetime.now()
        logger.info(f"[{video_id}] Starting HLS conversion of {event.name}")
        try:
            with scratch_workdir(
                PurePosixPath(event.name).name,
                TRANSCODE_SCRATCH_NAMESPACE,
                self.settings.scratch_root,
            ) as workdir:
                result = self._transcode(video_id, event.name, workdir)
        except Exception as e:
            logger.error(f"[{video_id}] Error generating HLS: {e}")
            self._record_failure(video_id, e)
            raise

        elapsed = datetime.now() - started
        check_budget(video_id, elapsed)
        logger.success(
            f"[{video_id}] HLS generation completed ({', '.join(result.qualities)}) "
            f"in {format_timedelta(elapsed)}"
        )
        return result

    def _transcode(self, video_id: str, object_key: str, workdir: Path) -> TranscodeResult:
        source = workdir / SOURCE_FILE_NAME
        output_root = workdir / OUTPUT_DIR_NAME
        output_root.mkdir(parents=True, exist_ok=True)

        logger.info(f"[{video_id}] Downloading source video...")
        self.runtime.blob_store.download(object_key, source)
        logger.debug(f"[{video_id}] Source size: {formatted_size(source.stat().st_size)}")

        encoder = self.runtime.encoder
        dimensions = encoder.probe_dimensions(source)
        logger.info(f"[{video_id}] Source dimensions: {dimensions.width}x{dimensions.height}")

        renditions: List[Rendition] = []
        for preset in self.settings.quality_presets:
            logger.info(f"[{video_id}] Processing {preset.name} variant...")
            renditions.append(encoder.encode(source, output_root, preset, dimensions))

        master = output_root / MASTER_PLAYLIST_NAME
        master.write_text(build_master_manifest(renditions), encoding="utf-8")
        references = self._check_references(output_root, master)
        logger.debug(f"[{video_id}] Master playlist references {', '.join(references)}")

        prefix = hls_prefix(video_id)
        logger.info(f"[{video_id}] Uploading HLS files...")
        uploaded = self._publish(output_root, prefix)

        hls_url = self.runtime.blob_store.public_url(f"{prefix}/{MASTER_PLAYLIST_NAME}")
        qualities = [r.name for r in renditions]
        try:
            self.runtime.record_store.update(video_id, TranscodeTransitions.processed(hls_url, qualities))
        except Exception:
            self._unpublish(uploaded)
            raise

        return TranscodeResult(video_id=video_id, hls_url=hls_url, qualities=qualities, uploaded_keys=uploaded)

    @staticmethod
    def _check_references(output_root: Path, master: Path) -> List[str]:
        """
        Reads the written master playlist back and checks every rendition it
        references exists in the output tree.

        Returns:
            The referenced playlist paths, in playlist order.
        """
        try:
            entries = parse_master_manifest(master.read_text(encoding="utf-8"))
        except ValueError as e:
            raise TranscodeException(f"Invalid master playlist: {e}") from e
        for entry in entries:
            if not (output_root / entry.uri).is_file():
                raise TranscodeException(f"Master playlist references missing file {entry.uri}")
        return [entry.uri for entry in entries]

    def _publish(self, output_root: Path, prefix: str) -> List[str]:
        """
        Uploads every file under `output_root`, master playlist last.

        Uploading the master last means a reader can never fetch a master
        that points at renditions which are not there yet. If any upload
        fails, the files already uploaded are removed again.
        """
        files = sorted(p for p in output_root.rglob("*") if p.is_file())
        master = output_root / MASTER_PLAYLIST_NAME
        files = [p for p in files if p != master] + [master]

        uploaded: List[str] = []
        try:
            for path in files:
                relative = path.relative_to(output_root).as_posix()
                key = f"{prefix}/{relative}"
                self.runtime.blob_store.upload(
                    path,
                    key,
                    content_type=content_type_for(relative),
                    cache_control=cache_control_for(relative),
                )
                uploaded.append(key)
        except Exception:
            self._unpublish(uploaded)
            raise

        logger.info(f"Uploaded {len(uploaded)} files under {prefix}/")
        return uploaded

    def _unpublish(self, keys: List[str]) -> None:
        if not keys:
            return
        logger.warning(f"Removing {len(keys)} already-uploaded files")
        for key in reversed(keys):
            try:
                self.runtime.blob_store.delete(key)
            except Exception as e:
                logger.error(f"Could not remove {key}: {e}")

    def _record_failure(self, video_id: str, error: Exception) -> None:
        message = str(error) or type(error).__name__
        try:
            # An empty fallback leaves a record blocked meanwhile untouched.
            self.runtime.record_store.update(video_id, TranscodeTransitions.failed(message), fallback={})
        except Exception as update_error:
            logger.error(f"[{video_id}] Could not record transcode failure: {update_error}")
