from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .intent import deploy_config_key, user_config_key, versions_key
from .lib.kv import KVStore

logger = logging.getLogger(__name__)

CLUSTER_KEYS = {
    "versions": versions_key,
    "deploy_config": deploy_config_key,
    "config": user_config_key,
}


def load_intent_document(path: str) -> Dict[str, Any]:
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Intent document is not valid YAML: {p}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Intent document must be a mapping/dict: {p}")
    return data


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def intent_writes(doc: Dict[str, Any]) -> List[Tuple[str, Any]]:
    """Flatten an intent document into (key, value) pairs.

    Layout:
      nodes:    {<host>: {<app>: {cluster: <cluster>}}}
      clusters: {<app>: {<cluster>: {versions: {...}, deploy_config: {...}, config: ...}}}

    Raises ValueError on an unknown entry or a malformed level, before any
    key is written. Values themselves are validated by the resolver on read.
    """

    unknown = set(doc) - {"nodes", "clusters"}
    if unknown:
        raise ValueError(f"Unknown top-level entries: {', '.join(sorted(map(str, unknown)))}")

    writes: List[Tuple[str, Any]] = []
    for host, apps in _mapping(doc.get("nodes"), "nodes").items():
        for app, node in _mapping(apps, f"nodes/{host}").items():
            writes.append((f"nodes/{host}/{app}", node))

    for app, clusters in _mapping(doc.get("clusters"), "clusters").items():
        for cluster, entries in _mapping(clusters, f"clusters/{app}").items():
            for name, value in _mapping(entries, f"clusters/{app}/{cluster}").items():
                key_fn = CLUSTER_KEYS.get(name)
                if key_fn is None:
                    raise ValueError(f"Unknown cluster entry {name!r} for {app}/{cluster}")
                writes.append((key_fn(app, cluster), value))
    return writes


def seed_intent(kv: KVStore, doc: Dict[str, Any], *, replace: bool = False) -> int:
    """Write an intent document into the KV store. Returns the number of keys.

    With replace, every nodes/<host> and clusters/<app> tree named in the
    document is deleted first.
    """

    writes = intent_writes(doc)

    if replace:
        for host in doc.get("nodes") or {}:
            kv.delete_tree(f"nodes/{host}")
        for app in doc.get("clusters") or {}:
            kv.delete_tree(f"clusters/{app}")

    for key, value in writes:
        kv.put(key, value)

    logger.info("Seeded %d key(s)", len(writes))
    return len(writes)
