"""
Services Package for the ingestion pipeline.

Adapters for everything the workers depend on but do not own:

- **Blob store (`BlobStore`, `S3BlobStore`, `LocalBlobStore`):** raw uploads
  and published renditions.
- **Record store (`RecordStore`, `YamlRecordStore`):** the video records the
  workers update and the mobile client polls.
- **Classifier (`ClassifierClient`):** the hosted unsafe-content model, with
  retry while the model is warming up.
- **Media toolchain (`FrameExtractor`, `HlsEncoder`):** ffmpeg command lines
  run through `utils.ffmpeg_utils.run_cmd`; ffprobe through ffmpeg-python.

The workers receive instances of these through a `PipelineRuntime`; nothing
here is a module-level singleton.
"""
from .blob_store import BlobStore, LocalBlobStore, S3BlobStore
from .classifier_client import ClassifierClient
from .frame_extractor import FrameExtractor
from .hls_encoder import HlsEncoder, SourceDimensions
from .record_store import RecordStore, YamlRecordStore

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "ClassifierClient",
    "FrameExtractor",
    "HlsEncoder",
    "SourceDimensions",
    "RecordStore",
    "YamlRecordStore",
]
