"""
Proctor exception hierarchy.

All application-specific exceptions inherit from ProctorError,
enabling centralized error handling in the API middleware layer.
"""

from datetime import UTC, datetime


class ProctorError(Exception):
    """Base exception for all Proctor errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "PROCTOR_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


class PermissionDeniedError(ProctorError):
    """Raised when camera or microphone access cannot be obtained."""

    def __init__(self, detail: str = "Camera and microphone access is required") -> None:
        super().__init__(
            detail=detail,
            code="PERMISSION_DENIED",
            status_code=403,
        )


class NoActiveRecordingError(ProctorError):
    """Raised when stopping a recorder that was never started."""

    def __init__(self) -> None:
        super().__init__(
            detail="No active recording",
            code="NO_ACTIVE_RECORDING",
            status_code=409,
        )


class RecorderBusyError(ProctorError):
    """Raised when starting a question while another one is still recording."""

    def __init__(self, active_question: int, requested_question: int) -> None:
        self.active_question = active_question
        self.requested_question = requested_question
        super().__init__(
            detail=(
                f"Question {active_question} is still recording; "
                f"stop it before starting question {requested_question}"
            ),
            code="RECORDER_BUSY",
            status_code=409,
        )


class UploadFailedError(ProctorError):
    """Raised when a single segment upload fails."""

    def __init__(self, question_number: int | None = None, detail: str = "Upload failed") -> None:
        self.question_number = question_number
        if question_number is not None:
            detail = f"Question {question_number} upload failed: {detail}"
        super().__init__(
            detail=detail,
            code="UPLOAD_FAILED",
            status_code=502,
        )


class DrainFailedError(ProctorError):
    """Raised by ``UploadQueue.drain_all`` when one or more uploads failed."""

    def __init__(self, failed: list) -> None:
        self.failed = failed
        questions = ", ".join(str(t.question_number) for t in failed)
        super().__init__(
            detail=f"{len(failed)} upload(s) failed (questions: {questions})",
            code="DRAIN_FAILED",
            status_code=502,
        )


class ValidationFailedError(ProctorError):
    """Raised when passcode, consent, or name fields do not validate."""

    def __init__(self, detail: str = "Validation failed", field: str = "") -> None:
        self.field = field
        super().__init__(
            detail=detail,
            code="VALIDATION_FAILED",
            status_code=400,
        )


class StorageError(ProctorError):
    """Raised when a cloud storage (Drive/Sheets) operation fails."""

    def __init__(self, detail: str = "Storage operation failed") -> None:
        super().__init__(detail=detail, code="STORAGE_ERROR", status_code=502)


class MergeError(ProctorError):
    """Raised when downloading or concatenating segments fails."""

    def __init__(self, detail: str = "Merge failed") -> None:
        super().__init__(detail=detail, code="MERGE_ERROR", status_code=500)


class APIError(ProctorError):
    """Client-side error talking to the Proctor server.

    Categories: "connection", "timeout", "http", "network".
    """

    def __init__(self, message: str, category: str = "unknown") -> None:
        self.message = message
        self.category = category
        super().__init__(detail=message, code="API_ERROR", status_code=502)


class RecordingError(ProctorError):
    """Raised when the capture backend fails to produce a segment."""

    def __init__(self, detail: str = "Recording failed") -> None:
        super().__init__(detail=detail, code="RECORDING_ERROR", status_code=500)
