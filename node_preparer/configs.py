from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from .lib.atomic import write_file_atomic

logger = logging.getLogger(__name__)

CONFIGS_DIRNAME = "configs"


def render_config(user_config: Any) -> bytes:
    """Canonical YAML: identical content always yields identical bytes."""

    text = yaml.safe_dump(
        user_config,
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=True,
    )
    return text.encode("utf-8")


def config_digest(content: bytes) -> str:
    return hashlib.md5(content).hexdigest()


def config_path(basedir: str | Path, content: bytes) -> Path:
    return Path(basedir) / CONFIGS_DIRNAME / f"{config_digest(content)}.yaml"


def materialize_config(app: str, user_config: Any, basedir: str | Path) -> Optional[Path]:
    """Write user_config to basedir/configs/<md5>.yaml once per distinct content.

    Returns the config path, or None if it could not be written.
    """

    try:
        content = render_config(user_config)
    except yaml.YAMLError as e:
        logger.error("%s: could not emit user config as yaml: %s", app, e)
        return None

    target = config_path(basedir, content)
    if target.exists():
        logger.debug("%s: config %s already present", app, target.name)
        return target

    # TODO: unreferenced configs are never removed; see inventory.list_configs.
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("%s: writing config %s", app, str(target))
        write_file_atomic(target, content, 0o644)
    except OSError as e:
        logger.error("%s: could not write config %s: %s", app, str(target), e)
        return None

    return target
