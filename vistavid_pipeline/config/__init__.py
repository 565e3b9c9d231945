"""
Configuration Package for the VistaVid ingestion pipeline.

Static defaults live in plain module constants (`common`, `moderation`,
`transcode`). Deployment-specific values are read from a YAML file into a
`PipelineSettings` object, which is built once per process and handed to the
workers explicitly. Nothing in this package holds mutable state.
"""
from .settings import PipelineSettings, load_settings

__all__ = ["PipelineSettings", "load_settings"]
