from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_ARTIFACT_REPO = "file:///srv/artifacts"
DEFAULT_CONSUL_URL = "http://127.0.0.1:8500"
DEFAULT_LOG_PATH = "/var/log/node-preparer.log"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class PreparerConfig:
    raw: Dict[str, Any]

    def _section(self, name: str) -> Dict[str, Any]:
        value = self.raw.get(name) or {}
        if not isinstance(value, dict):
            raise ValueError(f"{name} must be a mapping, got {type(value).__name__}")
        return value

    @property
    def hostname(self) -> str:
        return str(self.raw.get("hostname") or socket.gethostname())

    @property
    def artifact_repo(self) -> str:
        return str(self.raw.get("artifact_repo") or DEFAULT_ARTIFACT_REPO)

    @property
    def consul_url(self) -> str:
        consul = self._section("consul")
        return str(consul.get("url") or os.environ.get("CONSUL_HTTP_ADDR") or DEFAULT_CONSUL_URL)

    @property
    def consul_token(self) -> Optional[str]:
        return self._section("consul").get("token") or os.environ.get("CONSUL_HTTP_TOKEN") or None

    @property
    def kv_timeout_s(self) -> float:
        return float(self._section("timeouts").get("kv") or 10)

    @property
    def fetch_timeout_s(self) -> float:
        return float(self._section("timeouts").get("fetch") or 60)

    @property
    def extract_timeout_s(self) -> Optional[float]:
        # 0 disables the deadline.
        value = self._section("timeouts").get("extract")
        if value is None:
            value = 600
        return float(value) or None

    @property
    def workers(self) -> int:
        n = int(self.raw.get("workers") or 1)
        if n < 1:
            raise ValueError(f"workers must be >= 1, got {n}")
        return n

    @property
    def interval_s(self) -> float:
        return float(self.raw.get("interval") or 0)

    @property
    def log_path(self) -> str:
        return str(self.raw.get("log_path") or DEFAULT_LOG_PATH)

    @property
    def log_level(self) -> int:
        name = str(self.raw.get("log_level") or DEFAULT_LOG_LEVEL).upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"unknown log_level {name!r}")
        return level

    def validate(self) -> "PreparerConfig":
        """Evaluate every setting once so bad values fail at startup. Returns self."""

        for name in (
            "hostname",
            "artifact_repo",
            "consul_url",
            "consul_token",
            "kv_timeout_s",
            "fetch_timeout_s",
            "extract_timeout_s",
            "workers",
            "interval_s",
            "log_path",
            "log_level",
        ):
            try:
                getattr(self, name)
            except (TypeError, ValueError) as e:
                raise ValueError(f"invalid {name}: {e}") from e
        return self

    def with_overrides(self, **overrides: Any) -> "PreparerConfig":
        """Return a copy with every non-None override applied.

        consul_url maps to consul.url; everything else is a top-level key.
        """

        raw = dict(self.raw)
        for key, value in overrides.items():
            if value is None:
                continue
            if key == "consul_url":
                raw["consul"] = dict(self._section("consul"), url=value)
            else:
                raw[key] = value
        return PreparerConfig(raw=raw)


def load_preparer_config(path: Optional[str]) -> PreparerConfig:
    if not path:
        return PreparerConfig(raw={})

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("preparer config must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"preparer config is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError("preparer config must contain a mapping/object")

    return PreparerConfig(raw=raw)
