"""storage/__init__.py"""
from .database import Database
from .executions import ExecutionRepository
from .maintenance import MaintenanceRepository
from .migrations import apply_migrations
from .repository import AlertRepository
from .rules import RuleRepository

__all__ = [
    "Database",
    "apply_migrations",
    "AlertRepository",
    "ExecutionRepository",
    "MaintenanceRepository",
    "RuleRepository",
]
