"""Minimal REST client for the task collection used by the reconciler."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from core.errors import TransportError
from core.settings import SYNC
from services.task_cache import request_body


logger = logging.getLogger("offline_tasks.api")


class TasksApiClient:
    """``create``/``update``/``delete`` over ``{base_url}/tasks`` with JSON bodies.

    Every failure is raised as :class:`TransportError`; nothing is retried here.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or SYNC.api_base_url).rstrip("/")
        self.timeout = timeout or SYNC.request_timeout_sec
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.set_auth(token)

    def set_auth(self, token: Optional[str]) -> None:
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        else:
            self.session.headers.pop("Authorization", None)

    @property
    def collection_url(self) -> str:
        return f"{self.base_url}{SYNC.tasks_path}"

    # ------------------------------------------------------------------
    def list_tasks(self) -> List[Dict[str, Any]]:
        data = self._request("GET", self.collection_url)
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            return data["items"]
        if isinstance(data, list):
            return data
        return []

    def create(self, payload: Dict[str, Any], *, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        headers = {}
        if idempotency_key and SYNC.send_idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        data = self._request("POST", self.collection_url, json=request_body(payload), headers=headers)
        if isinstance(data, dict) and isinstance(data.get("task"), dict):
            return data["task"]
        return data if isinstance(data, dict) else {}

    def update(self, task_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = self._request("PUT", f"{self.collection_url}/{task_id}", json=request_body(payload))
        if isinstance(data, dict) and isinstance(data.get("task"), dict):
            return data["task"]
        return data if isinstance(data, dict) else None

    def delete(self, task_id: str) -> None:
        self._request("DELETE", f"{self.collection_url}/{task_id}")

    # ------------------------------------------------------------------
    def _request(self, method: str, url: str, **kwargs) -> Any:
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise TransportError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {url} returned invalid JSON") from exc


__all__ = ["TasksApiClient"]
