"""
VistaVid video ingestion pipeline.

Two event-triggered workers share a persisted video record:

- the moderation worker samples frames from a freshly uploaded video and scores
  them against an external unsafe-content classifier;
- the transcode worker turns the raw upload into HLS renditions and publishes a
  master manifest.

The workers never talk to each other. They coordinate only through the record's
`status` field, which the mobile client polls.
"""

__version__ = "0.3.0"
