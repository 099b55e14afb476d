"""
sources/actions.py

ActionExecutor implementations.

HttpActionExecutor  — POSTs {"action", "parameters"} to the AX remediation
                      agent, which restarts batch jobs, kills sessions, ...
DryRunActionExecutor — logs and records the call without touching AX
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..interfaces import ActionExecutor, ActionResult

logger = logging.getLogger(__name__)


class HttpActionExecutor(ActionExecutor):
    """
    The agent answers 2xx with {"success": bool, "detail": str}. A 2xx without
    a body counts as success; any other status is a failure. A "success" value
    that is not a JSON boolean is treated as failure.

    No timeout is applied here beyond the transport default: the remediation
    engine bounds every call with the rule's timeout_seconds.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client

    async def perform_action(self, action_name: str, parameters: dict[str, Any]) -> ActionResult:
        body = {"action": action_name, "parameters": parameters}
        url = f"{self.base_url}/actions/{action_name}"
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=body, headers=self._headers)
            else:
                async with httpx.AsyncClient(timeout=None) as client:
                    resp = await client.post(url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            return ActionResult(False, f"{type(exc).__name__}: {exc}")

        if resp.is_error:
            return ActionResult(False, f"HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError:
            return ActionResult(True, f"HTTP {resp.status_code}")
        if not isinstance(data, dict):
            return ActionResult(True, f"HTTP {resp.status_code}")
        success = data.get("success", True)
        if not isinstance(success, bool):
            logger.warning("Agent returned non-boolean success %r for %s", success, action_name)
            success = False
        return ActionResult(success, str(data.get("detail", "")))


class DryRunActionExecutor(ActionExecutor):
    """Always succeeds. `calls` keeps every (action, parameters) pair."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def perform_action(self, action_name: str, parameters: dict[str, Any]) -> ActionResult:
        self.calls.append((action_name, dict(parameters)))
        logger.info("[dry-run] would perform %s %s", action_name, parameters)
        return ActionResult(True, "dry run")
