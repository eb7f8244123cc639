"""
Remote document store client + connectivity check.

The remote side holds one collection per entity ('companies', 'prices'),
addressed by the same document ids as the local store. Every call may fail;
failures surface as RemoteStoreError and the caller decides whether that
aborts the operation or just leaves the local row unsynced.

REST shape (relative to CLOUD_BASE + CLOUD_API_PREFIX):
  GET    /<collection>          -> {"data": [{"name": <docId>, ...fields}]}
  PUT    /<collection>/<docId>  -> replace document
  PATCH  /<collection>/<docId>  -> merge fields into document
  DELETE /<collection>/<docId>
"""
import copy
import logging
import urllib.parse
from typing import Any, Dict, Optional

import requests

import billing_config as cfg

log = logging.getLogger("billing.cloud")


class RemoteStoreError(Exception):
    """A remote call failed (network, timeout, HTTP error or bad body)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _describe_response(resp: requests.Response) -> str:
    """Return a short description/body snippet for HTTP errors."""
    detail = ""
    try:
        body = resp.json()
        if isinstance(body, dict):
            detail = str(body.get("message") or body.get("exception") or "")
    except ValueError:
        detail = ""
    if not detail:
        detail = (resp.text or "").strip() or str(resp.reason or "")
    if len(detail) > 400:
        detail = detail[:400] + "…"
    return detail


class CloudStore:
    """HTTP document store reached through requests."""

    def __init__(self, base: Optional[str] = cfg.CLOUD_BASE, api_key: Optional[str] = cfg.CLOUD_API_KEY,
                 api_secret: Optional[str] = cfg.CLOUD_API_SECRET, prefix: Optional[str] = cfg.CLOUD_API_PREFIX,
                 timeout: float = cfg.CLOUD_TIMEOUT, ping_path: Optional[str] = cfg.CLOUD_PING_PATH,
                 ping_timeout: float = cfg.CLOUD_PING_TIMEOUT):
        self.base = (base or "").rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        prefix = prefix or ""
        self.prefix = ("/" + prefix.strip("/")) if prefix.strip("/") else ""
        self.timeout = timeout
        self.ping_path = ping_path or "/"
        self.ping_timeout = ping_timeout
        self.session = requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.api_key and self.api_secret:
            headers["Authorization"] = f"token {self.api_key}:{self.api_secret}"
        return headers

    def _url(self, collection: str, key: Optional[str] = None) -> str:
        path = self.prefix + "/" + urllib.parse.quote(collection, safe="")
        if key is not None:
            path += "/" + urllib.parse.quote(str(key), safe="")
        return self.base + path

    def _request(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None,
                 allow_missing: bool = False) -> Dict[str, Any]:
        if not self.base:
            raise RemoteStoreError("Remote store is not configured (CLOUD_BASE unset)")
        try:
            resp = self.session.request(method, url, headers=self._headers(), json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RemoteStoreError(f"{method} {url} failed: {exc}") from exc
        if allow_missing and resp.status_code == 404:
            return {}
        if resp.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {url} returned HTTP {resp.status_code}: {_describe_response(resp)}",
                status=resp.status_code,
            )
        if not resp.content:
            return {}
        try:
            body = resp.json()
        except ValueError as exc:
            raise RemoteStoreError(f"{method} {url} returned a non-JSON body") from exc
        return body if isinstance(body, dict) else {"data": body}

    # ---------- connectivity ----------
    def is_online(self) -> bool:
        """Probe the remote store. Not cached: every caller gets a fresh answer."""
        if not self.base:
            return False
        url = self.base + (self.ping_path if self.ping_path.startswith("/") else "/" + self.ping_path)
        try:
            resp = self.session.get(url, headers=self._headers(), timeout=self.ping_timeout)
        except requests.RequestException as exc:
            log.debug("Connectivity probe failed: %s", exc)
            return False
        return resp.status_code < 500

    # ---------- documents ----------
    def get(self, collection: str) -> Dict[str, Dict[str, Any]]:
        """Return every document of the collection as docId -> fields."""
        body = self._request("GET", self._url(collection))
        docs: Dict[str, Dict[str, Any]] = {}
        for doc in body.get("data") or []:
            if not isinstance(doc, dict):
                continue
            fields = dict(doc)
            doc_id = fields.pop("name", None) or fields.pop("docId", None)
            if not doc_id:
                continue
            docs[str(doc_id)] = fields
        return docs

    def set(self, collection: str, key: str, fields: Dict[str, Any], merge: bool = False):
        method = "PATCH" if merge else "PUT"
        self._request(method, self._url(collection, key), fields)

    def delete(self, collection: str, key: str):
        self._request("DELETE", self._url(collection, key), allow_missing=True)


class MemoryCloudStore:
    """In-process stand-in for the remote store (mock mode and tests)."""

    def __init__(self, online: bool = True):
        self.online = online
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _require_online(self):
        if not self.online:
            raise RemoteStoreError("Remote store unreachable")

    def is_online(self) -> bool:
        return self.online

    def get(self, collection: str) -> Dict[str, Dict[str, Any]]:
        self._require_online()
        return copy.deepcopy(self.collections.get(collection, {}))

    def set(self, collection: str, key: str, fields: Dict[str, Any], merge: bool = False):
        self._require_online()
        docs = self.collections.setdefault(collection, {})
        if merge and key in docs:
            docs[key].update(copy.deepcopy(fields))
        else:
            docs[key] = copy.deepcopy(fields)

    def delete(self, collection: str, key: str):
        self._require_online()
        self.collections.get(collection, {}).pop(key, None)


def build_cloud_store(mode: Optional[str] = None):
    """Pick the remote implementation from BILLING_CLOUD_MODE."""
    mode = (mode or cfg.CLOUD_MODE or "rest").lower()
    if mode == "memory":
        log.info("Using in-memory cloud store (mock mode)")
        return MemoryCloudStore()
    if not cfg.CLOUD_BASE:
        log.warning("CLOUD_BASE not set; running offline-only")
    return CloudStore()
