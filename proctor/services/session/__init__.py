"""
Session module - the test wizard state machine.
"""

from proctor.core.config import Settings, get_settings
from proctor.core.models import RecordingProfile

from .controller import Notify, SessionController
from .timer import CountdownTimer

__all__ = ["CountdownTimer", "SessionController", "create_session_controller"]


def create_session_controller(
    settings: Settings | None = None,
    notify: Notify | None = None,
) -> SessionController:
    """Assemble a controller with the configured backend and API client.

    Args:
        settings: Configuration; defaults to ``get_settings()``.
        notify: Async callback receiving UI events.

    Returns:
        A fresh controller for one participant session.
    """
    from proctor.services.capture import MediaCapture, QuestionRecorder, create_media_backend
    from proctor.services.upload import ProctorAPIClient

    settings = settings or get_settings()
    backend = create_media_backend(provider=settings.media_backend)
    capture = MediaCapture(backend)
    profile = RecordingProfile(
        mime_type=settings.recording_mime_type,
        video_bits_per_second=settings.video_bits_per_second,
        audio_bits_per_second=settings.audio_bits_per_second,
    )
    recorder = QuestionRecorder(capture, backend, profile)
    api = ProctorAPIClient(base_url=settings.api_base_url, timeout=settings.api_timeout_seconds)
    return SessionController(
        capture=capture,
        recorder=recorder,
        api=api,
        settings=settings,
        notify=notify,
    )
