"""
State machine infrastructure for multi-step flows.

This package provides state machines for the doctor registration wizard and
for the individual document uploads it tracks.
"""

from .base import FlowMachine
from .registry import get_flow_machine, FLOW_REGISTRY

__all__ = ["FlowMachine", "get_flow_machine", "FLOW_REGISTRY"]
