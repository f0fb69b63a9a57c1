from __future__ import annotations

import logging
import os
import shutil
import tarfile
import time
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)


class ArchiveError(RuntimeError):
    pass


class ExtractionTimeout(ArchiveError):
    pass


def _entry_path(dest: Path, name: str) -> Path:
    rel = Path(name)
    if rel.is_absolute() or ".." in rel.parts:
        raise ArchiveError(f"Corrupt archive entry escapes destination: {name}")
    return dest / rel


def extract_tar_gz(
    stream: BinaryIO,
    dest: str | Path,
    *,
    deadline: Optional[float] = None,
) -> int:
    """Extract a gzip-compressed tar stream into dest.

    - Only regular files are materialized; directory entries are skipped and
      parent directories are created as needed.
    - File mode bits come from the archive header.
    - deadline is a time.monotonic() value checked before every entry.

    Returns the number of files written.
    """

    out = Path(dest)
    count = 0
    with tarfile.open(fileobj=stream, mode="r|gz") as tar:
        for member in tar:
            if deadline is not None and time.monotonic() > deadline:
                raise ExtractionTimeout(f"Extraction deadline exceeded at {member.name}")

            if member.isdir():
                continue
            if not member.isfile():
                logger.debug("Skipping non-regular entry %s", member.name)
                continue

            fpath = _entry_path(out, member.name)
            fpath.parent.mkdir(parents=True, exist_ok=True)

            src = tar.extractfile(member)
            if src is None:
                raise ArchiveError(f"Could not read archive entry {member.name}")

            mode = member.mode & 0o7777
            fd = os.open(str(fpath), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(src, f)
                # O_CREAT honours the umask; set the header bits exactly.
                os.fchmod(f.fileno(), mode)
            count += 1

    return count
