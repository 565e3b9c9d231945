"""
This package contains the core domain models of the ingestion pipeline.

The domain layer describes what the pipeline works on, independent of the
blob store, the record store or the external media toolchain.

Modules:
    exceptions.py: The exception tree used by both workers. Every failure a
                   worker records on a video is one of these.
    video_record.py: The `VideoRecord` shared by the workers and the mobile
                     client, its closed `VideoStatus` enum and the per-worker
                     transition builders that keep status writes disjoint.
    events.py: The two trigger payloads (record created, object finalized).
    rendition.py: Quality presets and the rendition descriptors that flow into
                  the master manifest.
"""
