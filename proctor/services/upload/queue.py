"""Background upload queue for recorded segments.

``enqueue`` returns immediately and runs the upload as an ``asyncio.Task``;
``drain_all`` is the barrier the session controller awaits before declaring
the test complete. The queue never retries on its own: failed tasks are kept
aside until the caller explicitly retries them.

Usage::

    queue = UploadQueue(uploader=client.upload_segment, on_failure=notify)
    task = queue.enqueue(segment, metadata)
    await queue.drain_all()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from itertools import count

from proctor.core.exceptions import DrainFailedError, UploadFailedError
from proctor.core.models import Segment, UploadMetadata, UploadResponse, UploadStatus
from proctor.core.utils import segment_file_name

logger = logging.getLogger(__name__)

Uploader = Callable[[Segment, UploadMetadata, str], Awaitable[UploadResponse]]
FailureCallback = Callable[["UploadTask"], Awaitable[None]]

_task_ids = count(1)


@dataclass(eq=False)
class UploadTask:
    """Tracks one segment upload from enqueue to resolution."""

    segment: Segment | None
    metadata: UploadMetadata
    destination: str
    status: UploadStatus = UploadStatus.pending
    result: UploadResponse | None = None
    error: BaseException | None = None
    attempts: int = 0
    id: int = field(default_factory=lambda: next(_task_ids))
    _task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def question_number(self) -> int:
        return self.metadata.question_number

    @property
    def done(self) -> bool:
        return self.status in (UploadStatus.succeeded, UploadStatus.failed)


class UploadQueue:
    """Fire-and-track registry of segment uploads with a drain barrier.

    Args:
        uploader: Coroutine performing one upload
            ``(segment, metadata, destination) -> UploadResponse``.
        on_failure: Optional async callback invoked once per failed task.
    """

    def __init__(
        self,
        uploader: Uploader,
        on_failure: FailureCallback | None = None,
    ) -> None:
        self._uploader = uploader
        self._on_failure = on_failure
        self._outstanding: dict[int, UploadTask] = {}
        self._failed: dict[int, UploadTask] = {}
        self._succeeded_count = 0

    @property
    def outstanding(self) -> list[UploadTask]:
        return list(self._outstanding.values())

    @property
    def failed(self) -> list[UploadTask]:
        return list(self._failed.values())

    @property
    def succeeded_count(self) -> int:
        return self._succeeded_count

    def enqueue(self, segment: Segment, metadata: UploadMetadata) -> UploadTask:
        """Start uploading ``segment`` in the background (non-blocking).

        Enqueuing a segment that already has a live or failed task returns
        that task instead of creating a second one.
        """
        for task in (*self._outstanding.values(), *self._failed.values()):
            if task.segment is segment:
                logger.debug("Segment for question %s already queued", metadata.question_number)
                return task

        destination = segment_file_name(
            metadata.first_name,
            metadata.last_name,
            metadata.passcode,
            metadata.test_type,
            metadata.question_number,
            metadata.timestamp,
        )
        task = UploadTask(segment=segment, metadata=metadata, destination=destination)
        self._launch(task)
        logger.info(
            "Enqueued upload %s for question %s (%d bytes)",
            destination,
            metadata.question_number,
            segment.size,
        )
        return task

    def _launch(self, task: UploadTask) -> None:
        task.status = UploadStatus.pending
        task.error = None
        self._outstanding[task.id] = task
        task._task = asyncio.create_task(self._run(task))

    async def _run(self, task: UploadTask) -> None:
        task.status = UploadStatus.uploading
        task.attempts += 1
        try:
            task.result = await self._uploader(task.segment, task.metadata, task.destination)
        except Exception as exc:
            task.status = UploadStatus.failed
            task.error = exc
            self._outstanding.pop(task.id, None)
            self._failed[task.id] = task
            logger.error(
                "Upload failed for %s question=%s attempt=%d: %s",
                task.metadata.participant_name,
                task.question_number,
                task.attempts,
                exc,
            )
            await self._report_failure(task)
            return

        task.status = UploadStatus.succeeded
        task.segment = None  # bytes are no longer needed client-side
        self._outstanding.pop(task.id, None)
        self._succeeded_count += 1
        logger.info(
            "Upload succeeded for question %s -> %s",
            task.question_number,
            task.result.file_id if task.result else "?",
        )

    async def _report_failure(self, task: UploadTask) -> None:
        if self._on_failure is None:
            return
        try:
            await self._on_failure(task)
        except Exception:
            logger.warning(
                "Upload failure callback raised for question %s (non-fatal)",
                task.question_number,
            )

    def retry(self, task: UploadTask) -> UploadTask:
        """Re-submit a failed task. Only the caller decides to retry."""
        if task.id not in self._failed:
            raise ValueError(f"Upload task {task.id} is not in the failed set")
        del self._failed[task.id]
        logger.info("Retrying upload for question %s", task.question_number)
        self._launch(task)
        return task

    def retry_failed(self) -> list[UploadTask]:
        return [self.retry(t) for t in self.failed]

    async def drain_all(self) -> None:
        """Wait until every outstanding upload has resolved.

        Raises:
            DrainFailedError: If any task has failed and not been retried.
                Succeeded uploads are left in place.
        """
        while self._outstanding:
            pending = [t._task for t in self._outstanding.values()]
            await asyncio.gather(*pending, return_exceptions=True)
            for task in list(self._outstanding.values()):
                if task._task.done():
                    # cancelled before it could resolve itself
                    task.status = UploadStatus.failed
                    task.error = UploadFailedError(task.question_number, "upload was cancelled")
                    del self._outstanding[task.id]
                    self._failed[task.id] = task

        if self._failed:
            failed = sorted(self._failed.values(), key=lambda t: t.question_number)
            logger.error("Drain finished with %d failed upload(s)", len(failed))
            raise DrainFailedError(failed)
        logger.info("All uploads drained (%d succeeded)", self._succeeded_count)
