"""
Scratch working directories.

Every worker invocation downloads, extracts and encodes inside its own
temporary directory, which is removed on every exit path.
"""
import re
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from loguru import logger

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_prefix(key: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", key).strip("._") or "job"
    return f"{cleaned}-"


@contextmanager
def scratch_workdir(
    key: str,
    namespace: str,
    base_dir: Optional[Path] = None,
) -> Iterator[Path]:
    """
    Creates a private scratch directory and removes it when the block exits.

    The directory lives at `<base_dir>/<namespace>/<key>-<random>`. The random
    suffix makes every call unique, so two deliveries for the same video, or
    concurrent runs for different videos, never share a directory.

    Args:
        key: A human-recognizable name, usually the object's file name.
        namespace: Groups directories per worker (e.g. "moderation", "hls").
        base_dir: Parent directory. Defaults to the platform temp directory.

    Yields:
        The path of the freshly created, empty directory.
    """
    root = Path(base_dir or tempfile.gettempdir()) / namespace
    root.mkdir(parents=True, exist_ok=True)
    workdir = Path(tempfile.mkdtemp(prefix=_safe_prefix(key), dir=root))
    logger.debug(f"Created scratch directory {workdir}")
    try:
        yield workdir
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
        if workdir.exists():
            logger.warning(f"Failed to fully remove scratch directory {workdir}")
        else:
            logger.debug(f"Removed scratch directory {workdir}")
