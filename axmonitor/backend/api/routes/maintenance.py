"""
api/routes/maintenance.py

GET    /api/{env}/maintenance          — all maintenance windows
GET    /api/{env}/maintenance/active   — windows active right now
POST   /api/{env}/maintenance          — create a window
PUT    /api/{env}/maintenance/{id}     — replace a window
DELETE /api/{env}/maintenance/{id}     — delete a window

While a window with suppress_alerts=True is active the environment's
evaluation cycles are skipped.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...errors import MaintenanceWindowNotFound
from ...maintenance import MaintenanceGate
from ...services import MonitoringServices
from ..serializers import MaintenanceWindowRequest, window_to_dict
from .deps import get_services

router = APIRouter(prefix="/{environment}/maintenance", tags=["maintenance"])


@router.get("")
async def list_windows(services: MonitoringServices = Depends(get_services)) -> list[dict]:
    return [window_to_dict(w) for w in services.maintenance.list_windows()]


@router.get("/active")
async def active_windows(services: MonitoringServices = Depends(get_services)) -> list[dict]:
    gate = MaintenanceGate(services.maintenance)
    return [window_to_dict(w) for w in gate.active_windows()]


@router.post("", status_code=201)
async def create_window(
    body: MaintenanceWindowRequest,
    services: MonitoringServices = Depends(get_services),
) -> dict:
    window = services.maintenance.create(body.to_window())
    return window_to_dict(window)


@router.put("/{window_id}")
async def update_window(
    window_id: int,
    body: MaintenanceWindowRequest,
    services: MonitoringServices = Depends(get_services),
) -> dict:
    existing = services.maintenance.get(window_id)
    if existing is None:
        raise MaintenanceWindowNotFound(str(window_id))
    window = body.to_window(window_id)
    window.created_at = existing.created_at
    services.maintenance.update(window)
    return window_to_dict(window)


@router.delete("/{window_id}", status_code=204)
async def delete_window(
    window_id: int,
    services: MonitoringServices = Depends(get_services),
) -> None:
    if not services.maintenance.delete(window_id):
        raise MaintenanceWindowNotFound(str(window_id))
