"""
api/routes/deps.py

Shared FastAPI dependencies. Overridden in tests via app.dependency_overrides
or by installing a registry with set_registry().
"""

from __future__ import annotations

from ...services import MonitoringServices


def get_services(environment: str) -> MonitoringServices:
    """Resolve the {environment} path segment; unknown names raise EnvironmentNotFound (404)."""
    from ..main import get_registry
    return get_registry().get(environment)
