from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from .lib.kv import KVStore

logger = logging.getLogger(__name__)


class DecodeError(ValueError):
    pass


def nodes_prefix(hostname: str) -> str:
    return f"nodes/{hostname}"


def versions_key(app: str, cluster: str) -> str:
    return f"clusters/{app}/{cluster}/versions"


def deploy_config_key(app: str, cluster: str) -> str:
    return f"clusters/{app}/{cluster}/deploy_config"


def user_config_key(app: str, cluster: str) -> str:
    return f"clusters/{app}/{cluster}/config"


def decode_string_map(value: Any) -> Dict[str, str]:
    """Decode a KV value that must be a mapping of string to string.

    null values decode as "" (e.g. `runas: null`).
    """

    if not isinstance(value, Mapping):
        raise DecodeError(f"expected a mapping, got {type(value).__name__}")

    out: Dict[str, str] = {}
    for k, v in value.items():
        if not isinstance(k, str):
            raise DecodeError(f"expected string keys, got {type(k).__name__}")
        if v is None:
            v = ""
        if not isinstance(v, str):
            raise DecodeError(f"value for {k!r} is {type(v).__name__}, expected string")
        out[k] = v
    return out


@dataclass(frozen=True)
class NodeDeclaration:
    """nodes/<host>/<app>: which cluster this node runs the app for."""

    app: str
    cluster: str

    @classmethod
    def decode(cls, app: str, value: Any) -> "NodeDeclaration":
        data = decode_string_map(value)
        # A missing cluster is not a decode failure; the caller reports it separately.
        return cls(app=app, cluster=data.get("cluster", ""))


@dataclass(frozen=True)
class ClusterVersionSet:
    """clusters/<app>/<cluster>/versions: version id -> lifecycle state.

    The lifecycle state ("prep", "active", ...) is carried but not used to
    select versions: every listed version is installed, and activation is left
    to the supervisor.
    """

    states: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def decode(cls, value: Any) -> "ClusterVersionSet":
        states = decode_string_map(value)
        for version in states:
            # Versions name a directory under basedir/installs.
            if not version or "/" in version or version in {".", ".."}:
                raise DecodeError(f"version {version!r} is not a valid path component")
        return cls(states=states)

    def versions(self) -> list[str]:
        return sorted(self.states)


@dataclass(frozen=True)
class DeployConfig:
    """clusters/<app>/<cluster>/deploy_config (privileged, not developer-editable)."""

    basedir: str
    # Not enforced yet.
    runas: Optional[str] = None

    @classmethod
    def decode(cls, value: Any) -> "DeployConfig":
        data = decode_string_map(value)
        if "basedir" not in data:
            raise DecodeError("basedir missing")
        return cls(basedir=data["basedir"], runas=data.get("runas") or None)


@dataclass(frozen=True)
class WorkItem:
    """One (app, version) to prepare under basedir."""

    app: str
    version: str
    basedir: str
    user_config: Any = field(default_factory=dict, compare=False, repr=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.app, self.version)


def _resolve_app(kv: KVStore, hostname: str, app: str, node_value: Any) -> list[WorkItem]:
    try:
        node = NodeDeclaration.decode(app, node_value)
    except DecodeError as e:
        logger.warning("Invalid node data for %s (key %s/%s): %s", app, nodes_prefix(hostname), app, e)
        return []

    if not node.cluster:
        logger.warning("No cluster key in node data for %s", app)
        return []

    vkey = versions_key(app, node.cluster)
    try:
        version_set = ClusterVersionSet.decode(kv.get(vkey))
    except DecodeError as e:
        logger.warning("No or invalid version data for %s (key %s): %s", app, vkey, e)
        return []

    ckey = deploy_config_key(app, node.cluster)
    try:
        deploy = DeployConfig.decode(kv.get(ckey))
    except DecodeError as e:
        logger.warning("No or invalid config data for %s (key %s): %s", app, ckey, e)
        return []

    if not posixpath.isabs(deploy.basedir):
        logger.warning(
            "Not allowing relative basedir for %s (key %s): %r", app, ckey, deploy.basedir
        )
        return []

    user_config = kv.get(user_config_key(app, node.cluster))
    if user_config is None:
        user_config = {}

    return [
        WorkItem(app=app, version=v, basedir=deploy.basedir, user_config=user_config)
        for v in version_set.versions()
    ]


def resolve(kv: KVStore, hostname: str) -> Iterator[WorkItem]:
    """Yield one WorkItem per declared (app, version) for hostname.

    Invalid data for one application is logged and skipped. Failing to list
    the node's applications raises KVError.
    """

    prefix = nodes_prefix(hostname)
    apps = kv.list(prefix)
    logger.info("Found %d application(s) declared for %s", len(apps), hostname)

    for app in sorted(apps):
        if "/" in app:
            logger.debug("Ignoring nested key %s/%s", prefix, app)
            continue
        yield from _resolve_app(kv, hostname, app, apps[app])


def poll_once(kv: KVStore, hostname: str, emit: Optional[Callable[[WorkItem], None]]) -> int:
    """Resolve desired state and hand every WorkItem to emit.

    emit may be None to only validate (errors are still logged).
    Returns the number of items emitted.
    """

    n = 0
    for item in resolve(kv, hostname):
        if emit is not None:
            emit(item)
        n += 1
    return n
