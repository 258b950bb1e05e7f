"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Proctor settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        google_drive_folder_id: Root Drive folder holding participant folders.
        google_sheet_id: Spreadsheet listing valid passcodes.
        passcode_min: Lowest passcode accepted by the format check.
        passcode_max: Highest passcode accepted by the format check.
        test_duration_seconds: Single countdown shared by all questions.
        merge_interval_hours: Delay between merge scheduler runs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Google service account ---
    # Same variables as the Drive/Sheets service account JSON key
    google_project_id: str = ""
    google_private_key_id: str = ""
    google_private_key: str = ""  # May contain literal "\n" sequences
    google_client_email: str = ""
    google_client_id: str = ""

    # --- Google Drive / Sheets ---
    google_drive_folder_id: str = ""
    google_sheet_id: str = ""
    google_sheet_range: str = "Sheet1!A:A"

    # --- Passcodes ---
    passcode_min: int = 1089100800000
    passcode_max: int = 1089100899999
    verify_passcode_remotely: bool = True  # Also check the Sheets list on entry

    # --- Test flow ---
    question_count: int = 5
    consent_count: int = 4
    repeat_allowance: int = 2  # Prompt replays allowed per question
    test_duration_seconds: float = 600.0
    transition_cooldown_seconds: float = 0.5

    # --- Capture ---
    # Local capture devices used by the ffmpeg media backend
    media_backend: str = "ffmpeg"
    video_device: str = "/dev/video0"
    video_input_format: str = "v4l2"
    audio_device: str = "default"
    audio_input_format: str = "pulse"
    video_width: int = 320
    video_height: int = 240
    preview_width: int = 640
    preview_height: int = 480
    audio_sample_rate: int = 44100
    video_bits_per_second: int = 100_000  # Low bitrate keeps segments uploadable
    audio_bits_per_second: int = 96_000
    recording_mime_type: str = "video/webm;codecs=vp8,opus"

    # --- Client ---
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: float = 300.0

    # --- Upload ---
    upload_max_bytes: int = 500 * 1024 * 1024

    # --- Merge job ---
    merge_interval_hours: float = 8.0
    merge_temp_dir: str = "data/temp_videos"
    ffmpeg_binary: str = "ffmpeg"

    # --- Application ---
    app_host: str = "0.0.0.0"  # Bind address for the FastAPI server
    app_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]
    log_level: str = "INFO"  # Python logging level


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
