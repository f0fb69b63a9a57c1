from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

from .configs import CONFIGS_DIRNAME
from .installer import INSTALLS_DIRNAME


@dataclass(frozen=True)
class InstalledArtifact:
    app: str
    version: str
    path: Path


def list_installed(basedir: str | Path) -> List[InstalledArtifact]:
    """Installed artifacts under basedir, for a separate garbage collector.

    Directory names are split at the last "_", so app names may contain
    underscores but versions may not.
    """

    root = Path(basedir) / INSTALLS_DIRNAME
    if not root.is_dir():
        return []

    out: List[InstalledArtifact] = []
    for child in sorted(root.iterdir(), key=lambda c: c.name):
        app, sep, version = child.name.rpartition("_")
        if not child.is_dir() or not sep or not app or not version:
            continue
        out.append(InstalledArtifact(app=app, version=version, path=child))
    return out


def list_configs(basedir: str | Path) -> List[Path]:
    root = Path(basedir) / CONFIGS_DIRNAME
    if not root.is_dir():
        return []
    return sorted(p for p in root.glob("*.yaml") if p.is_file())
