"""Page/question state machine for one test session.

The controller owns every piece of session-scoped state: the current page,
the shared countdown, repeat allowances, the recorder and the upload queue.
One instance is built per participant session.

Flow::

    passcode_entry -> equipment_check -> test_selection -> instructions
        -> question 1..5 -> finalizing -> complete   (or failed)

Leaving a question stops its recorder and enqueues the segment upload
without waiting for it; only finalizing waits, on ``UploadQueue.drain_all``.
Page transitions are serialized: a request that arrives while another one is
in progress is dropped, and the lock is released a short cooldown after the
transition completes.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import UTC, datetime

from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import (
    APIError,
    DrainFailedError,
    NoActiveRecordingError,
    PermissionDeniedError,
    ProctorError,
    RecordingError,
    ValidationFailedError,
)
from proctor.core.models import (
    EquipmentReport,
    MediaConstraints,
    PageState,
    SessionInfo,
    TestType,
    UploadMetadata,
)
from proctor.core.utils import clean_passcode, validate_passcode
from proctor.services.capture.media import MediaCapture
from proctor.services.capture.recorder import QuestionRecorder
from proctor.services.session.timer import CountdownTimer
from proctor.services.upload.client import ProctorAPIClient
from proctor.services.upload.queue import UploadQueue, UploadTask

logger = logging.getLogger(__name__)

Notify = Callable[[dict], Awaitable[None]]


async def _no_notify(_data: dict) -> None:
    return None


class SessionController:
    """Drives one participant through the test wizard.

    Args:
        capture: Owner of the session-long camera/microphone stream.
        recorder: Per-question recorder on that stream.
        api: Client for passcode, completion, upload and merge endpoints.
        settings: Configuration; defaults to ``get_settings()``.
        uploads: Upload queue; built around ``api.upload_segment`` if omitted.
        notify: Async callback receiving UI events (page, upload_failed, ...).
        prompts: Prompt media reference per question number.
    """

    def __init__(
        self,
        capture: MediaCapture,
        recorder: QuestionRecorder,
        api: ProctorAPIClient | None = None,
        settings: Settings | None = None,
        uploads: UploadQueue | None = None,
        notify: Notify | None = None,
        prompts: Mapping[int, str] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._capture = capture
        self._recorder = recorder
        self._api = api
        self._notify = notify or _no_notify
        if uploads is None:
            if api is None:
                raise ValueError("Either an upload queue or an API client is required")
            uploads = UploadQueue(uploader=api.upload_segment, on_failure=self._on_upload_failed)
        self._uploads = uploads

        count = self._settings.question_count
        self._prompts = dict(prompts or {n: f"prompts/question{n}.mp4" for n in range(1, count + 1)})
        self._repeats = {n: self._settings.repeat_allowance for n in range(1, count + 1)}
        self._timer = CountdownTimer(self._settings.test_duration_seconds, self._on_time_up)
        self._cooldown = self._settings.transition_cooldown_seconds

        self.state = PageState.passcode_entry
        self.question_number: int | None = None
        self.session: SessionInfo | None = None
        self.equipment: EquipmentReport | None = None
        self.last_error: ProctorError | None = None
        self._missing_segments: set[int] = set()
        self._changing_page = False
        self._merge_requested = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def uploads(self) -> UploadQueue:
        return self._uploads

    @property
    def timer(self) -> CountdownTimer:
        return self._timer

    @property
    def is_changing_page(self) -> bool:
        return self._changing_page

    @property
    def current_prompt(self) -> str | None:
        if self.question_number is None:
            return None
        return self._prompts.get(self.question_number)

    # ------------------------------------------------------------------
    # Transition guard
    # ------------------------------------------------------------------

    async def _transition(self, action: Callable[[], Awaitable[None]]) -> bool:
        """Run ``action`` unless another transition holds the lock."""
        if self._changing_page:
            logger.debug("Transition already in progress; request dropped (page=%s)", self.state)
            return False
        self._changing_page = True
        try:
            await action()
        except BaseException:
            # nothing changed, so the next attempt need not wait
            self._changing_page = False
            raise
        asyncio.get_running_loop().call_later(self._cooldown, self._release_transition)
        return True

    def _release_transition(self) -> None:
        self._changing_page = False

    def _require_state(self, *states: PageState) -> None:
        if self.state not in states:
            raise ProctorError(
                detail=f"Action not allowed on page {self.state}",
                code="INVALID_STATE",
                status_code=409,
            )

    async def _set_page(self, state: PageState, question_number: int | None = None) -> None:
        self.state = state
        self.question_number = question_number
        logger.info("Page -> %s%s", state, f" {question_number}" if question_number else "")
        await self._emit({"event": "page", "state": state.value, "question": question_number})

    async def _emit(self, data: dict) -> None:
        try:
            await self._notify(data)
        except Exception:
            logger.warning("Notify callback failed for event %s (non-fatal)", data.get("event"))

    # ------------------------------------------------------------------
    # Entry and equipment check
    # ------------------------------------------------------------------

    async def submit_identity(
        self,
        first_name: str,
        last_name: str,
        passcode: str,
        consents: Sequence[bool],
    ) -> bool:
        """Validate the entry form and move to the equipment check.

        Raises:
            ValidationFailedError: Passcode, consents or names are invalid.
            APIError: The remote passcode lookup could not be reached.
        """
        self._require_state(PageState.passcode_entry)

        async def action() -> None:
            s = self._settings
            if not validate_passcode(passcode, s.passcode_min, s.passcode_max):
                raise ValidationFailedError(
                    "Invalid passcode. Please enter a valid passcode.", field="passcode"
                )
            if len(consents) != s.consent_count or not all(consents):
                raise ValidationFailedError(
                    "Please check all verification items before proceeding.", field="consents"
                )
            first, last = first_name.strip(), last_name.strip()
            if not first or not last:
                raise ValidationFailedError(
                    "Please enter your first and last name.", field="name"
                )

            cleaned = clean_passcode(passcode)
            if s.verify_passcode_remotely and self._api is not None:
                if not await self._api.validate_passcode(cleaned):
                    raise ValidationFailedError("Invalid passcode", field="passcode")

            self.session = SessionInfo(first_name=first, last_name=last, passcode=cleaned)
            logger.info("Identity accepted for %s (passcode %s)", self.session.participant_name, cleaned)
            await self._set_page(PageState.equipment_check)

        return await self._transition(action)

    async def check_equipment(self) -> bool:
        """Run the camera/microphone preview and move to test selection.

        Raises:
            PermissionDeniedError: The devices could not be opened.
        """
        self._require_state(PageState.equipment_check)

        async def action() -> None:
            s = self._settings
            constraints = MediaConstraints(
                width=s.preview_width,
                height=s.preview_height,
                sample_rate=s.audio_sample_rate,
            )
            report = await self._capture.preview(constraints)
            self.equipment = report
            if not report.ok:
                raise PermissionDeniedError("Camera or microphone is not available")
            await self._set_page(PageState.test_selection)

        return await self._transition(action)

    async def select_test(self, test_type: TestType) -> bool:
        """Choose the test to take; a test already completed is refused.

        Raises:
            ValidationFailedError: This passcode already completed ``test_type``.
        """
        self._require_state(PageState.test_selection)

        async def action() -> None:
            if self._api is not None:
                completion = await self._api.check_completion(self.session.passcode)
                if completion.is_completed(test_type):
                    raise ValidationFailedError(
                        f"The {test_type.value} test was already completed for this passcode.",
                        field="test_type",
                    )
            self.session.test_type = test_type
            await self._set_page(PageState.instructions)

        return await self._transition(action)

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def start_test(self) -> bool:
        """Acquire the recording stream and enter question 1.

        Raises:
            PermissionDeniedError: Access refused; the test cannot start.
        """
        self._require_state(PageState.instructions)

        async def action() -> None:
            s = self._settings
            constraints = MediaConstraints(
                width=s.video_width,
                height=s.video_height,
                sample_rate=s.audio_sample_rate,
            )
            await self._capture.acquire(constraints)
            self.session.started_at = datetime.now(UTC)
            logger.info(
                "Test %s started for %s",
                self.session.test_type,
                self.session.participant_name,
            )
            await self._enter_question(1)

        return await self._transition(action)

    async def _enter_question(self, number: int) -> None:
        await self._set_page(PageState.question, number)
        self._timer.start()
        try:
            await self._recorder.start(number)
        except RecordingError as exc:
            await self._record_missing(number, exc)

    async def _record_missing(self, number: int, exc: ProctorError) -> None:
        self._missing_segments.add(number)
        self.last_error = exc
        logger.error("No segment for question %s: %s", number, exc.detail)
        await self._emit({"event": "error", "question": number, "detail": exc.detail})

    async def advance(self) -> bool:
        """Leave the current question (explicit "next" or timeout).

        Returns:
            True if the transition was applied, False if it was dropped
            because another transition was in progress.
        """
        if self.state is not PageState.question:
            return False
        return await self._transition(self._leave_question)

    async def _leave_question(self) -> None:
        number = self.question_number
        try:
            segment = await self._recorder.stop()
        except (RecordingError, NoActiveRecordingError) as exc:
            await self._record_missing(number, exc)
        else:
            self._uploads.enqueue(segment, self._metadata_for(number, segment.captured_at))

        if number < self._settings.question_count:
            await self._enter_question(number + 1)
        else:
            await self._finalize()

    def _metadata_for(self, number: int, captured_at: datetime) -> UploadMetadata:
        return UploadMetadata(
            first_name=self.session.first_name,
            last_name=self.session.last_name,
            passcode=self.session.passcode,
            question_number=number,
            timestamp=captured_at,
            test_type=self.session.test_type,
        )

    async def _on_time_up(self) -> None:
        """Countdown hit zero: advance through the remaining questions."""
        while self.state is PageState.question:
            if not await self.advance():
                await asyncio.sleep(self._cooldown)

    # ------------------------------------------------------------------
    # Repeats
    # ------------------------------------------------------------------

    def repeats_remaining(self, question_number: int) -> int:
        return self._repeats[question_number]

    def can_repeat(self, question_number: int) -> bool:
        return self._repeats.get(question_number, 0) > 0

    async def repeat_prompt(self, question_number: int) -> bool:
        """Replay the question prompt if any repeats remain.

        Only the question currently on screen can be replayed. Recording is
        not touched.
        """
        if question_number not in self._repeats:
            raise ValueError(f"Unknown question: {question_number}")
        if self.state is not PageState.question or question_number != self.question_number:
            logger.debug("Repeat of question %s ignored on page %s", question_number, self.state)
            return False
        if self._repeats[question_number] == 0:
            return False
        self._repeats[question_number] -= 1
        remaining = self._repeats[question_number]
        logger.debug("Prompt %s replayed; %d repeats left", question_number, remaining)
        await self._emit({
            "event": "repeat",
            "question": question_number,
            "prompt": self._prompts.get(question_number),
            "remaining": remaining,
        })
        return True

    # ------------------------------------------------------------------
    # Finalizing
    # ------------------------------------------------------------------

    async def _finalize(self) -> None:
        await self._set_page(PageState.finalizing)
        self._timer.cancel()
        try:
            await self._uploads.drain_all()
        except DrainFailedError as exc:
            await self._fail(exc)
            return

        if self._missing_segments:
            missing = ", ".join(str(n) for n in sorted(self._missing_segments))
            await self._fail(RecordingError(f"No recording for question(s) {missing}"))
            return

        await self._request_merge()
        self._capture.release()
        await self._set_page(PageState.complete)
        await self._emit({"event": "complete", "participant": self.session.participant_name})

    async def _fail(self, exc: ProctorError) -> None:
        self.last_error = exc
        logger.error(
            "Session for %s (passcode %s) could not be finalized: %s",
            self.session.participant_name,
            self.session.passcode,
            exc.detail,
        )
        await self._set_page(PageState.failed)
        await self._emit({"event": "error", "code": exc.code, "detail": exc.detail})

    async def _request_merge(self) -> None:
        if self._api is None or self._merge_requested:
            return
        self._merge_requested = True
        s = self.session
        try:
            result = await self._api.request_merge(s.first_name, s.last_name, s.passcode, s.test_type)
            logger.info("Merge requested for %s: %s", s.participant_name, result.message)
        except APIError as exc:
            logger.error("Merge trigger failed for %s (passcode %s): %s", s.participant_name, s.passcode, exc.message)

    async def retry_uploads(self) -> bool:
        """Manually re-submit failed uploads and finalize again."""
        self._require_state(PageState.failed)

        async def action() -> None:
            self._uploads.retry_failed()
            self.last_error = None
            await self._finalize()

        return await self._transition(action)

    async def _on_upload_failed(self, task: UploadTask) -> None:
        await self._emit({
            "event": "upload_failed",
            "question": task.question_number,
            "detail": str(task.error),
        })

    # ------------------------------------------------------------------
    # Unload
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Best-effort cleanup when the participant leaves the page."""
        self._timer.cancel()
        try:
            await self._recorder.abort()
        finally:
            self._capture.release()
        logger.info("Session closed on page %s", self.state)
