"""correlation/__init__.py"""
from .correlator import AlertCorrelator
from .relationships import CorrelationRelationship, RelationshipSet

__all__ = ["AlertCorrelator", "CorrelationRelationship", "RelationshipSet"]
