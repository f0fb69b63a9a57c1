from __future__ import annotations

import argparse
import logging
import time
from typing import Optional

from .inventory import list_configs, list_installed
from .lib.kv import ConsulKV, KVError, KVStore
from .lib.repo import ArtifactRepo, repo_from_url
from .logging_utils import configure_logging
from .pipeline import run_poll
from .preparer_config import PreparerConfig, load_preparer_config
from .seed import load_intent_document, seed_intent

logger = logging.getLogger(__name__)


def _config_from_args(args: argparse.Namespace) -> PreparerConfig:
    cfg = load_preparer_config(args.config)
    return cfg.with_overrides(
        consul_url=args.consul,
        log_path=args.log,
        hostname=getattr(args, "hostname", None),
        artifact_repo=getattr(args, "repo", None),
        workers=getattr(args, "workers", None),
        interval=getattr(args, "interval", None),
    ).validate()


def _kv_from_config(cfg: PreparerConfig) -> KVStore:
    return ConsulKV(cfg.consul_url, token=cfg.consul_token, timeout_s=cfg.kv_timeout_s)


def _setup(args: argparse.Namespace) -> Optional[PreparerConfig]:
    """Load config and start logging; None (after logging why) on bad settings."""

    try:
        cfg = _config_from_args(args)
    except (OSError, ValueError) as e:
        logger.error("Invalid preparer configuration: %s", e)
        return None
    configure_logging(log_path=cfg.log_path, level=cfg.log_level, verbose=args.verbose)
    return cfg


def poll(cfg: PreparerConfig, kv: KVStore, repo: ArtifactRepo) -> int:
    """Poll once, or every interval seconds. Returns the process exit status."""

    while True:
        try:
            run_poll(
                kv,
                cfg.hostname,
                repo,
                workers=cfg.workers,
                extract_timeout_s=cfg.extract_timeout_s,
            )
        except KVError as e:
            logger.error("Could not read intent for %s: %s", cfg.hostname, e)
            return 1

        if cfg.interval_s <= 0:
            return 0
        time.sleep(cfg.interval_s)


def cmd_poll(args: argparse.Namespace) -> int:
    cfg = _setup(args)
    if cfg is None:
        return 1
    try:
        repo = repo_from_url(cfg.artifact_repo, timeout_s=cfg.fetch_timeout_s)
    except ValueError as e:
        logger.error("Invalid artifact repo %s: %s", cfg.artifact_repo, e)
        return 1

    logger.info(
        "Preparing node %s (kv=%s, repo=%s, workers=%d)",
        cfg.hostname,
        cfg.consul_url,
        cfg.artifact_repo,
        cfg.workers,
    )
    return poll(cfg, _kv_from_config(cfg), repo)


def cmd_seed(args: argparse.Namespace) -> int:
    cfg = _setup(args)
    if cfg is None:
        return 1
    try:
        doc = load_intent_document(args.file)
        n = seed_intent(_kv_from_config(cfg), doc, replace=args.replace)
    except (OSError, ValueError) as e:
        logger.error("Invalid intent document %s: %s", args.file, e)
        return 1
    except KVError as e:
        logger.error("Seeding failed: %s", e)
        return 1
    print(f"Seeded {n} key(s)")
    return 0


def cmd_inventory(args: argparse.Namespace) -> int:
    for a in list_installed(args.basedir):
        print(f"install {a.app} {a.version} {a.path}")
    for p in list_configs(args.basedir):
        print(f"config {p.name} {p}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="node-preparer")
    p.add_argument("--config", default=None, help="Preparer config (yaml)")
    p.add_argument("--consul", default=None, help="Consul HTTP address (default: $CONSUL_HTTP_ADDR)")
    p.add_argument("--log", default=None, help="Path to preparer log")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("poll", help="Install everything this node is declared to run")
    sp.add_argument("--hostname", default=None, help="Node name in the KV store (default: this host)")
    sp.add_argument("--repo", default=None, help="Artifact repo url (file:// or http(s)://)")
    sp.add_argument("--workers", type=int, default=None, help="Parallel installs (default: 1)")
    sp.add_argument("--interval", type=float, default=None, help="Poll every N seconds (default: once)")
    sp.set_defaults(func=cmd_poll)

    sp = sub.add_parser("seed", help="Write an intent document into the KV store")
    sp.add_argument("file")
    sp.add_argument("--replace", action="store_true", help="Delete existing node/cluster keys first")
    sp.set_defaults(func=cmd_seed)

    sp = sub.add_parser("inventory", help="List installed artifacts and configs under a basedir")
    sp.add_argument("basedir")
    sp.set_defaults(func=cmd_inventory)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
