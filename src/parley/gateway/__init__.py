"""Dispatch layer: inline and queued paths into the conversation loop."""

from parley.gateway.models import DispatchResult, InboundEvent, InlineResult, Job
from parley.gateway.service import Dispatcher

__all__ = [
    "DispatchResult",
    "Dispatcher",
    "InboundEvent",
    "InlineResult",
    "Job",
]
