"""remediation/__init__.py"""
from .engine import RemediationEngine
from .models import RemediationExecution, RemediationOutcome

__all__ = ["RemediationEngine", "RemediationExecution", "RemediationOutcome"]
