"""
Upload coordinator for registration documents.

Runs one asynchronous transfer per file, tracks a synthetic progress value
for each (the document store does not report real progress) and exposes the
in-flight set as a read-only aggregate so callers can show "N files
remaining". Each tracked upload is an UploadTaskMachine:

    pending -> succeeded | failed -> reaped

Failed uploads are reaped immediately. Succeeded uploads stay visible at 100%
until reaped, either by a loop callback after `reap_delay` seconds or, when
`reap_delay` is None, by an explicit reap()/reap_completed() call.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Union

import structlog

from doctor_onboarding.core.config import settings
from doctor_onboarding.core.exceptions import UploadFailure
from doctor_onboarding.domain.ports import DocumentStore
from doctor_onboarding.domain.schemas import (
    DocumentFile,
    DocumentType,
    UploadProgress,
    UploadTaskView,
)
from doctor_onboarding.state_machines.upload_task_flow import UploadTaskMachine

logger = structlog.get_logger(__name__)

ProgressListener = Callable[[UploadProgress], None]


class UploadCoordinator:
    """Tracks concurrent document uploads for one registration."""

    def __init__(
        self,
        document_store: DocumentStore,
        tick_interval: float = 0.2,
        tick_step: int = 10,
        tick_ceiling: int = 90,
        reap_delay: Optional[float] = 1.0,
    ):
        self.document_store = document_store
        self.tick_interval = tick_interval
        self.tick_step = tick_step
        self.tick_ceiling = tick_ceiling
        self.reap_delay = reap_delay
        self._tasks: Dict[str, UploadTaskMachine] = {}
        self._field_index: Dict[str, str] = {}
        self._reap_handles: Dict[str, asyncio.TimerHandle] = {}
        self._listeners: List[ProgressListener] = []

    @classmethod
    def from_settings(cls, document_store: DocumentStore) -> "UploadCoordinator":
        return cls(
            document_store,
            tick_interval=settings.upload_tick_interval_seconds,
            tick_step=settings.upload_tick_step,
            tick_ceiling=settings.upload_tick_ceiling,
            reap_delay=settings.upload_reap_delay_seconds,
        )

    async def upload(
        self,
        file: DocumentFile,
        document_type: Union[DocumentType, str],
        owner_id: str,
        field: Optional[str] = None,
    ) -> str:
        """
        Upload one document and return its address.

        Args:
            file: Document payload
            document_type: Classification tag for the document store
            owner_id: Identity the document belongs to
            field: Form field the file came from (tracking key)

        Returns:
            URL of the stored document

        Raises:
            UploadFailure: If the transfer fails or another upload for the same
                field is still pending
        """
        document_type = DocumentType(document_type)
        field = field or document_type.value
        task = self._register(field, document_type)
        ticker = asyncio.create_task(self._tick(task))

        try:
            result = await self.document_store.upload_document(file, owner_id, document_type)
            if not result.url:
                raise UploadFailure("No address returned for uploaded document", field=field)
        except Exception as e:
            self._fail(task, e)
            message = getattr(e, "message", None) or str(e) or type(e).__name__
            raise UploadFailure(
                f"Failed to upload {document_type.value}: {message}", field=field
            ) from e
        finally:
            ticker.cancel()

        task.succeed()
        logger.info(
            "document_uploaded",
            file_id=task.file_id,
            field=field,
            document_type=document_type.value,
            owner_id=owner_id,
        )
        self._notify()
        self._schedule_reap(task.file_id)
        return result.url

    def snapshot(self) -> UploadProgress:
        """Read-only view of every tracked (not yet reaped) upload."""
        return UploadProgress(
            tasks=tuple(
                UploadTaskView(
                    file_id=task.file_id,
                    field=task.context["field"],
                    document_type=task.context["document_type"],
                    progress=task.progress,
                    state=task.current_state.id,
                )
                for task in self._tasks.values()
            )
        )

    @property
    def remaining(self) -> int:
        return self.snapshot().remaining

    def task_for_field(self, field: str) -> Optional[UploadTaskMachine]:
        file_id = self._field_index.get(field)
        return self._tasks.get(file_id) if file_id else None

    def add_listener(self, listener: ProgressListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def reap(self, file_id: str) -> bool:
        """
        Drop a finished upload from tracking.

        Returns:
            False if the upload is unknown or still pending
        """
        task = self._tasks.get(file_id)
        if task is None or task.is_pending:
            return False
        self._reap(file_id)
        return True

    def reap_completed(self) -> int:
        """Reap every succeeded upload; returns how many were removed."""
        finished = [
            file_id
            for file_id, task in self._tasks.items()
            if task.current_state.id == "succeeded"
        ]
        for file_id in finished:
            self._reap(file_id)
        return len(finished)

    def abandon(self):
        """
        Forget all tracking state. Transfers already in flight keep running;
        their results are simply no longer tracked here.
        """
        for handle in self._reap_handles.values():
            handle.cancel()
        self._reap_handles.clear()
        abandoned = len(self._tasks)
        self._tasks.clear()
        self._field_index.clear()
        if abandoned:
            logger.info("upload_tracking_abandoned", count=abandoned)
        self._notify()

    def _register(self, field: str, document_type: DocumentType) -> UploadTaskMachine:
        existing = self.task_for_field(field)
        if existing is not None:
            if existing.is_pending:
                raise UploadFailure(
                    f"An upload for {field} is already in progress", field=field
                )
            self._reap(existing.file_id)

        file_id = f"{field}_{int(time.time() * 1000)}"
        task = UploadTaskMachine(
            context={"id": file_id, "field": field, "document_type": document_type.value}
        )
        self._tasks[file_id] = task
        self._field_index[field] = file_id
        logger.debug("upload_task_started", file_id=file_id, field=field)
        self._notify()
        return task

    async def _tick(self, task: UploadTaskMachine):
        """Synthetic progress: +tick_step every tick_interval, capped below 100."""
        while task.is_pending and task.progress < self.tick_ceiling:
            await asyncio.sleep(self.tick_interval)
            if not task.is_pending:
                break
            task.advance_progress(self.tick_step, self.tick_ceiling)
            if task.file_id in self._tasks:
                self._notify()

    def _fail(self, task: UploadTaskMachine, error: Exception):
        if task.is_pending:
            task.fail(error_message=str(error))
        self._reap(task.file_id)

    def _schedule_reap(self, file_id: str):
        if file_id not in self._tasks or self.reap_delay is None:
            return
        if self.reap_delay <= 0:
            self._reap(file_id)
            return
        loop = asyncio.get_running_loop()
        self._reap_handles[file_id] = loop.call_later(self.reap_delay, self._reap, file_id)

    def _reap(self, file_id: str):
        handle = self._reap_handles.pop(file_id, None)
        if handle is not None:
            handle.cancel()

        task = self._tasks.pop(file_id, None)
        if task is None:
            return
        if not task.is_pending and not task.is_reaped:
            task.reap()

        field = task.context["field"]
        if self._field_index.get(field) == file_id:
            del self._field_index[field]
        self._notify()

    def _notify(self):
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
