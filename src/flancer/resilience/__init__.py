"""Resilience infrastructure for collaborator calls: timeouts and retry."""

from flancer.resilience.retry import resilient_call
from flancer.resilience.timeouts import bounded

__all__ = [
    "bounded",
    "resilient_call",
]
