"""
State machine registry for dynamic instantiation.

Provides factory function to create state machine instances by flow type.
"""

from typing import Any, Dict, Optional

from .base import FlowMachine


FLOW_REGISTRY: Dict[str, str] = {
    "registration": "RegistrationFlowMachine",
    "upload_task": "UploadTaskMachine",
}


def get_flow_machine(
    flow_type: str,
    context: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
    **kwargs
) -> FlowMachine:
    """
    Factory to instantiate state machine by flow type.

    Args:
        flow_type: Type of flow (registration, upload_task)
        context: Flow context (id, metadata)
        user_id: User ID for logging and ownership
        **kwargs: Machine-specific arguments (prefill, uploads, orchestrator, ...)

    Returns:
        Instantiated state machine

    Raises:
        ValueError: If flow_type is not registered
    """
    if flow_type not in FLOW_REGISTRY:
        raise ValueError(
            f"Unknown flow type: {flow_type}. "
            f"Available: {list(FLOW_REGISTRY.keys())}"
        )

    if flow_type == "registration":
        from .registration_flow import RegistrationFlowMachine
        return RegistrationFlowMachine(context=context, user_id=user_id, **kwargs)
    elif flow_type == "upload_task":
        from .upload_task_flow import UploadTaskMachine
        return UploadTaskMachine(context=context, user_id=user_id, **kwargs)
    else:
        raise ValueError(f"Flow type {flow_type} not implemented yet")
