"""escalation/__init__.py"""
from .engine import EscalationEngine
from .models import EscalationExecution

__all__ = ["EscalationEngine", "EscalationExecution"]
