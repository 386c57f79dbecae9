"""Call state: typed variables, the call entity, the registry and events."""

from agi_gateway.core.call_registry import CallRegistry
from agi_gateway.core.coercion import coerce_variables
from agi_gateway.core.events import EventBus
from agi_gateway.core.models import AgiCall
from agi_gateway.core.types import NumericalString, PhoneNumber, TypeOfNumber

__all__ = [
    "AgiCall",
    "CallRegistry",
    "EventBus",
    "NumericalString",
    "PhoneNumber",
    "TypeOfNumber",
    "coerce_variables",
]
