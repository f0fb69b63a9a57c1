from __future__ import annotations

import logging
import os
import tarfile
import time
from pathlib import Path
from typing import Optional

import requests

from .lib.archive import ArchiveError, extract_tar_gz
from .lib.atomic import scratch_dir
from .lib.repo import ArtifactRepo

logger = logging.getLogger(__name__)

INSTALLED = "installed"
PRESENT = "present"
FAILED = "failed"

INSTALLS_DIRNAME = "installs"


def install_dir(basedir: str | Path, app: str, version: str) -> Path:
    return Path(basedir) / INSTALLS_DIRNAME / f"{app}_{version}"


def install_artifact(
    app: str,
    version: str,
    basedir: str | Path,
    repo: ArtifactRepo,
    *,
    deadline_s: Optional[float] = None,
) -> str:
    """Ensure basedir/installs/<app>_<version> exists.

    - An existing target (any filesystem entry) is left alone.
    - Otherwise the artifact is extracted into scratch space under basedir and
      renamed into place, so the target either does not exist or is complete.
    - Failures are logged with source and destination and reported as FAILED;
      the next poll retries because the target is still missing.
    """

    target = install_dir(basedir, app, version)
    if os.path.lexists(target):
        logger.info("%s already installed, skipping", str(target))
        return PRESENT

    source = repo.location(app, version)
    deadline = time.monotonic() + deadline_s if deadline_s else None

    try:
        with scratch_dir(basedir, prefix=f"{app}_{version}.") as scratch:
            logger.info("Extracting %s to %s", source, str(scratch))
            with repo.open(app, version) as stream:
                n = extract_tar_gz(stream, scratch, deadline=deadline)

            # mkdtemp creates 0700; the supervisor may run as another user.
            os.chmod(scratch, 0o755)
            target.parent.mkdir(parents=True, exist_ok=True)
            logger.info("Moving %s to %s (%d files)", str(scratch), str(target), n)
            os.rename(scratch, target)
    except (OSError, tarfile.TarError, ArchiveError, requests.RequestException) as e:
        logger.error("Could not install %s to %s: %s", source, str(target), e)
        return FAILED

    return INSTALLED
