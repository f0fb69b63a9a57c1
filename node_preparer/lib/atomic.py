from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

SCRATCH_DIRNAME = "tmp"


@contextlib.contextmanager
def scratch_dir(basedir: str | Path, *, prefix: str = "preparer.") -> Iterator[Path]:
    """Yield a fresh directory under basedir/tmp, removed on every exit path.

    Scratch space lives on the same filesystem as basedir so that a later
    os.rename() into basedir/installs is atomic.
    """

    root = Path(basedir) / SCRATCH_DIRNAME
    root.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=str(root)))
    try:
        yield path
    finally:
        # Already gone after a successful rename.
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)


def write_file_atomic(path: str | Path, content: bytes, mode: int = 0o644) -> None:
    """Write content so readers see either the old file or the complete new one."""

    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
            os.fchmod(f.fileno(), mode)
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
    logger.debug("Wrote %s (%d bytes)", str(target), len(content))
