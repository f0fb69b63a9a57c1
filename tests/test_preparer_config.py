import logging
import textwrap

import pytest

from node_preparer.preparer_config import (
    DEFAULT_ARTIFACT_REPO,
    PreparerConfig,
    load_preparer_config,
)


def test_defaults(monkeypatch):
    monkeypatch.delenv("CONSUL_HTTP_ADDR", raising=False)
    monkeypatch.delenv("CONSUL_HTTP_TOKEN", raising=False)
    cfg = load_preparer_config(None)

    assert cfg.hostname
    assert cfg.artifact_repo == DEFAULT_ARTIFACT_REPO
    assert cfg.consul_url == "http://127.0.0.1:8500"
    assert cfg.consul_token is None
    assert cfg.workers == 1
    assert cfg.interval_s == 0
    assert cfg.kv_timeout_s == 10
    assert cfg.extract_timeout_s == 600


def test_consul_address_from_environment(monkeypatch):
    monkeypatch.setenv("CONSUL_HTTP_ADDR", "http://consul.service:8500")
    monkeypatch.setenv("CONSUL_HTTP_TOKEN", "t0k")
    cfg = PreparerConfig(raw={})

    assert cfg.consul_url == "http://consul.service:8500"
    assert cfg.consul_token == "t0k"


def test_load_yaml(tmp_path):
    p = tmp_path / "preparer.yaml"
    p.write_text(
        textwrap.dedent(
            """
            hostname: node-1
            artifact_repo: https://artifacts.example.com
            workers: 4
            consul:
              url: http://consul:8500
            timeouts:
              kv: 2
              extract: 0
            """
        )
    )
    cfg = load_preparer_config(str(p))

    assert cfg.hostname == "node-1"
    assert cfg.artifact_repo == "https://artifacts.example.com"
    assert cfg.workers == 4
    assert cfg.consul_url == "http://consul:8500"
    assert cfg.kv_timeout_s == 2
    assert cfg.extract_timeout_s is None


def test_overrides_skip_none():
    cfg = PreparerConfig(raw={"hostname": "a", "consul": {"token": "t"}})
    out = cfg.with_overrides(hostname=None, workers=2, consul_url="http://c:1")

    assert out.hostname == "a"
    assert out.workers == 2
    assert out.consul_url == "http://c:1"
    assert out.consul_token == "t"
    assert cfg.workers == 1


def test_rejects_bad_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_preparer_config(str(tmp_path / "missing.yaml"))

    j = tmp_path / "c.json"
    j.write_text("{}")
    with pytest.raises(ValueError):
        load_preparer_config(str(j))

    l = tmp_path / "c.yaml"
    l.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_preparer_config(str(l))


@pytest.mark.parametrize(
    "raw, setting",
    [
        ({"consul": "http://consul:8500"}, "consul_url"),
        ({"timeouts": [1, 2]}, "kv_timeout_s"),
        ({"timeouts": {"fetch": "soon"}}, "fetch_timeout_s"),
        ({"workers": -1}, "workers"),
        ({"log_level": "LOUD"}, "log_level"),
    ],
)
def test_validate_names_the_bad_setting(raw, setting):
    with pytest.raises(ValueError, match=setting):
        PreparerConfig(raw=raw).validate()


def test_log_level_from_config():
    assert PreparerConfig(raw={}).log_level == logging.INFO
    assert PreparerConfig(raw={"log_level": "debug"}).log_level == logging.DEBUG
