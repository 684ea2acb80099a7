# ui/api_client.py
"""
Pulseboard API Client — v1.0.0

requests-based client for the Pulseboard HTTP API.

HTTP errors map back onto the error taxonomy:
    400 -> ValidationError, 401 -> Unauthorized, 404 -> NotFound,
    409 -> Conflict, 5xx / connection errors -> TransientIOFailure
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from core.errors import (
    Conflict,
    NotConfigured,
    NotFound,
    PulseError,
    TransientIOFailure,
    Unauthorized,
    ValidationError,
)
from core.records import FlowCompletion, FlowTask, TagEntry, Task, UsageTotals


logger = logging.getLogger("pulse.client")

DEFAULT_TIMEOUT = 15

_STATUS_ERRORS = {
    400: ValidationError,
    401: Unauthorized,
    404: NotFound,
    409: Conflict,
}


class PulseClient:
    """One instance per dashboard session."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.password: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # Transport
    # ─────────────────────────────────────────────────────────────────────

    def _headers(self, auth: bool) -> Dict[str, str]:
        if auth and self.password:
            return {"Authorization": f"Bearer {self.password}"}
        return {}

    def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        auth: bool = False,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                json=body,
                params=params,
                headers=self._headers(auth),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransientIOFailure(f"{method} {path} failed: {e}") from e

        if resp.ok:
            try:
                return resp.json()
            except ValueError as e:
                raise TransientIOFailure(f"{method} {path} returned invalid JSON") from e

        raise self._error_for(resp)

    @staticmethod
    def _error_for(resp: requests.Response) -> PulseError:
        try:
            message = resp.json().get("message") or resp.reason
        except (ValueError, AttributeError):
            message = resp.reason or f"HTTP {resp.status_code}"

        error_cls = _STATUS_ERRORS.get(resp.status_code)
        if error_cls is not None:
            return error_cls(message)
        if resp.status_code == 500 and "configured" in (message or "").lower():
            return NotConfigured(message)
        return TransientIOFailure(message or f"HTTP {resp.status_code}")

    # ─────────────────────────────────────────────────────────────────────
    # Auth
    # ─────────────────────────────────────────────────────────────────────

    def verify_password(self, password: str) -> None:
        """Raises Unauthorized on a wrong password; remembers it on success."""
        self._request("POST", "/api/auth", {"password": password})
        self.password = password

    def logout(self) -> None:
        self.password = None

    @property
    def authorized(self) -> bool:
        return self.password is not None

    # ─────────────────────────────────────────────────────────────────────
    # Records
    # ─────────────────────────────────────────────────────────────────────

    def load_tasks(self) -> List[Task]:
        data = self._request("GET", "/api/priorities", auth=True)
        return [Task.from_dict(d) for d in data]

    def save_tasks(self, tasks: List[Task]) -> None:
        self._request("POST", "/api/priorities", [t.to_dict() for t in tasks], auth=True)

    def load_tags(self) -> List[TagEntry]:
        return [TagEntry.from_dict(d) for d in self._request("GET", "/api/tags")]

    def add_tag(self, value: str, label: str) -> List[TagEntry]:
        data = self._request("POST", "/api/tags", {"value": value, "label": label}, auth=True)
        return [TagEntry.from_dict(d) for d in data.get("tags", [])]

    def delete_tag(self, value: str) -> List[TagEntry]:
        data = self._request("DELETE", "/api/tags", {"value": value}, auth=True)
        return [TagEntry.from_dict(d) for d in data.get("tags", [])]

    def load_flow(self) -> Tuple[List[FlowTask], List[FlowCompletion]]:
        data = self._request("GET", "/api/flowkeeper")
        tasks = [FlowTask.from_dict(d) for d in data.get("tasks", [])]
        completions = [FlowCompletion.from_dict(d) for d in data.get("completions", [])]
        return tasks, completions

    def save_flow_tasks(self, tasks: List[FlowTask]) -> None:
        self._request("POST", "/api/flowkeeper", [t.to_dict() for t in tasks], auth=True)

    def complete_flow_task(self, task_id: str) -> Optional[FlowCompletion]:
        data = self._request("POST", "/api/flowkeeper/complete", {"id": task_id}, auth=True)
        completion = data.get("completion")
        return FlowCompletion.from_dict(completion) if completion else None

    def poll_usage(self, fresh: bool = False) -> UsageTotals:
        params = {"fresh": "1"} if fresh else None
        return UsageTotals.from_dict(self._request("GET", "/api/usage", params=params))


__all__ = ["PulseClient"]
