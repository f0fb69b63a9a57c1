from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .configs import materialize_config
from .dispatch import dispatch
from .installer import FAILED, INSTALLED, PRESENT, install_artifact
from .intent import WorkItem, poll_once
from .lib.kv import KVStore
from .lib.repo import ArtifactRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollResult:
    items: List[WorkItem]
    installed: List[WorkItem] = field(default_factory=list)
    present: List[WorkItem] = field(default_factory=list)
    failed: List[WorkItem] = field(default_factory=list)
    config_failed: List[WorkItem] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.config_failed

    def summary(self) -> str:
        return (
            f"items={len(self.items)} installed={len(self.installed)} "
            f"present={len(self.present)} failed={len(self.failed)} "
            f"config_failed={len(self.config_failed)}"
        )


def prepare(
    item: WorkItem,
    repo: ArtifactRepo,
    *,
    extract_timeout_s: Optional[float] = None,
) -> tuple[str, bool]:
    """Install the artifact, then write its config. Returns (status, config_ok)."""

    status = install_artifact(
        item.app,
        item.version,
        item.basedir,
        repo,
        deadline_s=extract_timeout_s,
    )
    config_ok = materialize_config(item.app, item.user_config, item.basedir) is not None
    return status, config_ok


def run_poll(
    kv: KVStore,
    hostname: str,
    repo: ArtifactRepo,
    *,
    workers: int = 1,
    extract_timeout_s: Optional[float] = None,
    prepare_fn: Callable[..., tuple[str, bool]] = prepare,
) -> PollResult:
    """Reconcile the node once.

    Resolution runs on the calling thread and hands items to the installer
    through an unbuffered channel. Per-item failures end up in the result;
    only a KVError while listing the node's applications propagates.
    """

    items: List[WorkItem] = []
    config_failed: List[WorkItem] = []
    by_status: dict[str, List[WorkItem]] = {INSTALLED: [], PRESENT: [], FAILED: []}
    lock = threading.Lock()

    def handle(item: WorkItem) -> None:
        status, config_ok = prepare_fn(item, repo, extract_timeout_s=extract_timeout_s)
        with lock:
            by_status[status].append(item)
            if not config_ok:
                config_failed.append(item)

    def produce(send: Callable[[WorkItem], None]) -> None:
        def emit(item: WorkItem) -> None:
            items.append(item)
            send(item)

        poll_once(kv, hostname, emit)

    stats = dispatch(produce, handle, workers=workers)
    if stats.errors:
        logger.warning("%d item(s) raised while preparing", stats.errors)

    result = PollResult(
        items=items,
        installed=by_status[INSTALLED],
        present=by_status[PRESENT],
        failed=by_status[FAILED],
        config_failed=config_failed,
    )
    logger.info("Poll for %s finished: %s", hostname, result.summary())
    return result
