"""Negotiation lifecycle: state machine, templates and manager"""

from .manager import NegotiationManager
from .state_machine import NegotiationStateMachine, compute_floor_price
from .templates import MESSAGE_TEMPLATES, list_templates, resolve_message

__all__ = [
    "NegotiationManager",
    "NegotiationStateMachine",
    "compute_floor_price",
    "MESSAGE_TEMPLATES",
    "list_templates",
    "resolve_message",
]
