"""Negotiation lifecycle engine and job materialization."""

from flancer.engine.materialization import JobMaterializer
from flancer.engine.negotiation import NegotiationEngine

__all__ = [
    "JobMaterializer",
    "NegotiationEngine",
]
