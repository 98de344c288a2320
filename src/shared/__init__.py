"""Shared constants and observer helpers."""
from shared.observable import EventData, Observable, Observer, WorkflowEvent

__all__ = [
    'EventData',
    'Observable',
    'Observer',
    'WorkflowEvent',
]
