"""
Pydantic v2 request / response models and shared domain types.

Session, segment and capture types are used by the client orchestration
layer; the request/response models describe the server API.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: datetime


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TestType(StrEnum):
    """The two proficiency tests a passcode may take."""

    __test__ = False  # not a pytest class

    english = "english"
    non_english = "non_english"

    @property
    def tag(self) -> str:
        """Token embedded in Drive file names for this test type."""
        return "ENGLISH" if self is TestType.english else "NONENG"


class PageState(StrEnum):
    """Wizard pages driven by the session controller."""

    passcode_entry = "passcode_entry"
    equipment_check = "equipment_check"
    test_selection = "test_selection"
    instructions = "instructions"
    question = "question"
    finalizing = "finalizing"
    complete = "complete"
    failed = "failed"


class SessionInfo(BaseModel):
    """Participant identity held in memory for the wizard's lifetime."""

    first_name: str
    last_name: str
    passcode: str
    test_type: TestType | None = None
    started_at: datetime | None = None

    @property
    def participant_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class MediaConstraints(BaseModel):
    """Requested camera/microphone properties."""

    width: int = 320
    height: int = 240
    echo_cancellation: bool = True
    noise_suppression: bool = True
    sample_rate: int = 44100


class RecordingProfile(BaseModel):
    """Encoder settings for a question recording."""

    mime_type: str = "video/webm;codecs=vp8,opus"
    video_bits_per_second: int = 100_000
    audio_bits_per_second: int = 96_000


@dataclass(frozen=True)
class Segment:
    """One immutable recorded clip for a single question."""

    data: bytes
    mime_type: str
    question_number: int
    captured_at: datetime

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class EquipmentReport:
    """Outcome of the equipment-check preview."""

    video_ok: bool
    audio_ok: bool
    labels: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.video_ok and self.audio_ok


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class UploadStatus(StrEnum):
    """Lifecycle of a background upload task."""

    pending = "pending"
    uploading = "uploading"
    succeeded = "succeeded"
    failed = "failed"


class UploadMetadata(BaseModel):
    """Structured metadata sent alongside a segment."""

    first_name: str
    last_name: str
    passcode: str
    question_number: int
    timestamp: datetime
    test_type: TestType

    @property
    def participant_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class UploadResponse(BaseModel):
    """POST /api/upload response."""

    success: bool = True
    file_id: str
    file_name: str
    web_view_link: str = ""
    participant_name: str = ""
    passcode: str = ""
    question_number: int = 0
    timestamp: str = ""


# ---------------------------------------------------------------------------
# Passcode / completion / combine
# ---------------------------------------------------------------------------


class PasscodeRequest(BaseModel):
    """Request body carrying a participant passcode."""

    passcode: str = ""


class PasscodeValidationResponse(BaseModel):
    """POST /api/validate-passcode response."""

    valid: bool
    message: str = ""


class CompletionFlags(BaseModel):
    english: bool = False
    non_english: bool = False


class CompletionCounts(BaseModel):
    english: int = 0
    non_english: int = 0


class CompletionResponse(BaseModel):
    """POST /api/check-completion response."""

    success: bool = True
    completed: CompletionFlags = Field(default_factory=CompletionFlags)
    details: CompletionCounts = Field(default_factory=CompletionCounts)

    def is_completed(self, test_type: TestType) -> bool:
        return getattr(self.completed, test_type.value)


class CombineRequest(BaseModel):
    """POST /api/combine request body."""

    first_name: str
    last_name: str
    passcode: str
    test_type: TestType = TestType.english


class CombineResponse(BaseModel):
    """POST /api/combine response."""

    success: bool = False
    message: str = ""
    files_found: int = 0
    metadata_file_id: str | None = None


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class MarkerVideo(BaseModel):
    """A segment reference inside a merge marker."""

    id: str
    name: str
    created_time: str = ""
    question_number: int


class MergeMarker(BaseModel):
    """Contents of a ``*_COMBINE_METADATA.json`` marker file."""

    participant: str
    first_name: str
    last_name: str
    passcode: str
    test_type: TestType = TestType.english
    timestamp: datetime
    videos: list[MarkerVideo] = Field(default_factory=list)
    status: str = "ready_for_combination"


class MergeRunSummary(BaseModel):
    """Counters reported at the end of one merge run."""

    found: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    combined_files: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Error
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error envelope returned by the API."""

    detail: str
    code: str
    timestamp: str
