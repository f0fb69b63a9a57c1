import io
import tarfile
from pathlib import Path

import pytest

from node_preparer.lib.repo import LocalArtifactRepo, artifact_relpath


def write_tar_gz(dest: Path, files: dict, mode: int = 0o644, dirs=()) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(dest, "w:gz") as tar:
        for d in dirs:
            info = tarfile.TarInfo(d)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return dest


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def repo(repo_root: Path) -> LocalArtifactRepo:
    return LocalArtifactRepo(repo_root)


@pytest.fixture
def make_artifact(repo_root: Path):
    def _make(app: str, version: str, files: dict, **kw) -> Path:
        return write_tar_gz(repo_root / artifact_relpath(app, version), files, **kw)

    return _make


@pytest.fixture
def basedir(tmp_path: Path) -> Path:
    p = tmp_path / "basedir"
    p.mkdir()
    return p
