from __future__ import annotations

import base64
import copy
import json
import logging
from typing import Any, Dict, Optional, Protocol

import requests

logger = logging.getLogger(__name__)


class KVError(RuntimeError):
    """The KV store could not be reached or answered unexpectedly."""


class KVStore(Protocol):
    def get(self, key: str) -> Any:
        """Return the decoded value, or None when the key does not exist."""
        ...

    def list(self, prefix: str) -> Dict[str, Any]:
        """Return {key relative to prefix: value} for every key under prefix."""
        ...

    def put(self, key: str, value: Any) -> None:
        ...

    def delete_tree(self, prefix: str) -> None:
        ...


def _decode_value(raw: bytes) -> Any:
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        # Left for the reader to reject as invalid data.
        return text


class ConsulKV:
    """KV store backed by the Consul HTTP API.

    Values are stored JSON-encoded, matching what the seeding tools write.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8500",
        *,
        token: Optional[str] = None,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def _url(self, key: str) -> str:
        return f"{self.base_url}/v1/kv/{key.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"X-Consul-Token": self.token}
        return {}

    def _request(self, method: str, key: str, **kwargs: Any) -> requests.Response:
        try:
            r = self.session.request(
                method,
                self._url(key),
                headers=self._headers(),
                timeout=self.timeout_s,
                **kwargs,
            )
        except requests.RequestException as e:
            raise KVError(f"KV {method} {key} failed: {e}") from e

        if r.status_code != 404 and not 200 <= r.status_code < 300:
            raise KVError(f"KV {method} {key} failed: {r.status_code} {r.text}")
        return r

    def _entries(self, r: requests.Response) -> list:
        try:
            data = r.json()
        except ValueError as e:
            raise KVError(f"KV returned a non-JSON response: {e}") from e
        if not isinstance(data, list):
            raise KVError(f"KV returned unexpected payload type {type(data).__name__}")
        return data

    def get(self, key: str) -> Any:
        r = self._request("GET", key)
        if r.status_code == 404:
            return None
        entries = self._entries(r)
        if not entries or entries[0].get("Value") is None:
            return None
        return _decode_value(base64.b64decode(entries[0]["Value"]))

    def list(self, prefix: str) -> Dict[str, Any]:
        prefix = prefix.rstrip("/") + "/"
        r = self._request("GET", prefix, params={"recurse": "true"})
        if r.status_code == 404:
            return {}

        out: Dict[str, Any] = {}
        for entry in self._entries(r):
            key = entry.get("Key") or ""
            rel = key[len(prefix):] if key.startswith(prefix) else key
            # Folder placeholders carry no value.
            if not rel or entry.get("Value") is None:
                continue
            out[rel] = _decode_value(base64.b64decode(entry["Value"]))
        return out

    def put(self, key: str, value: Any) -> None:
        body = json.dumps(value, sort_keys=True).encode("utf-8")
        r = self._request("PUT", key, data=body)
        if r.status_code == 404:
            raise KVError(f"KV PUT {key} failed: 404")
        logger.debug("KV put %s", key)

    def delete_tree(self, prefix: str) -> None:
        self._request("DELETE", prefix, params={"recurse": "true"})
        logger.debug("KV delete tree %s", prefix)


class MemoryKV:
    """In-process KV store with the same semantics as ConsulKV."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = {}
        for k, v in (data or {}).items():
            self.put(k, v)

    def get(self, key: str) -> Any:
        return copy.deepcopy(self._data.get(key.lstrip("/")))

    def list(self, prefix: str) -> Dict[str, Any]:
        prefix = prefix.strip("/") + "/"
        return {
            k[len(prefix):]: copy.deepcopy(v)
            for k, v in self._data.items()
            if k.startswith(prefix) and len(k) > len(prefix)
        }

    def put(self, key: str, value: Any) -> None:
        self._data[key.lstrip("/")] = copy.deepcopy(value)

    def delete_tree(self, prefix: str) -> None:
        prefix = prefix.strip("/")
        for k in [k for k in self._data if k == prefix or k.startswith(prefix + "/")]:
            del self._data[k]
