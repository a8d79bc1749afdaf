"""
Upload Task Flow State Machine.

Lifecycle of a single document upload tracked by the upload coordinator:
pending -> succeeded | failed -> reaped. Reaping removes the task from the
coordinator's active set; it is triggered explicitly (or from a scheduled
callback) rather than by the machine itself.
"""

from typing import Any, Dict, Optional

import structlog
from statemachine import State

from .base import FlowMachine

logger = structlog.get_logger(__name__)

MAX_PROGRESS = 100


class UploadTaskMachine(FlowMachine):
    """
    State machine for one tracked upload.

    Holds the synthetic progress value; progress is pinned to 100 on success
    and can only move forward while pending.
    """

    pending = State(initial=True, value="pending")
    succeeded = State(value="succeeded")
    failed = State(value="failed")
    reaped = State(value="reaped", final=True)

    succeed = pending.to(succeeded)
    fail = pending.to(failed)
    reap = succeeded.to(reaped) | failed.to(reaped)

    def __init__(self, context: Optional[Dict[str, Any]] = None, **kwargs):
        """
        Initialize upload task machine.

        Args:
            context: id (tracking id), field, document_type
            **kwargs: Additional context (user_id, start_value)
        """
        self.progress = 0
        super().__init__(context=context, **kwargs)

    @property
    def file_id(self) -> str:
        return self.context["id"]

    @property
    def is_pending(self) -> bool:
        return self.current_state.id == "pending"

    @property
    def is_reaped(self) -> bool:
        return self.current_state.id == "reaped"

    def advance_progress(self, step: int, ceiling: int) -> int:
        """Synthetic tick; never reaches 100 on its own."""
        if self.is_pending and self.progress < ceiling:
            self.progress = min(self.progress + step, ceiling)
        return self.progress

    def on_enter_succeeded(self):
        """Action: Pin progress at 100 so observers see the completion flash."""
        self.progress = MAX_PROGRESS
        logger.info(
            "upload_task_succeeded",
            file_id=self.context.get("id"),
            field=self.context.get("field"),
        )

    def on_fail(self, error_message: Optional[str] = None):
        """Action: Record why the transfer failed."""
        self.error_code = "UPLOAD_FAILED"
        self.error_message = error_message or "Upload failed"
        logger.warning(
            "upload_task_failed",
            file_id=self.context.get("id"),
            field=self.context.get("field"),
            error=self.error_message,
        )

    def on_enter_reaped(self):
        logger.debug("upload_task_reaped", file_id=self.context.get("id"))
