"""
Passcode list backed by a Google Sheets column.

Each lookup reads the configured range and checks membership of the cleaned
passcode. Transient Sheets errors (rate limits, 5xx) are retried.
"""

import asyncio
import logging

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from proctor.core.config import Settings, get_settings
from proctor.core.exceptions import StorageError
from proctor.core.utils import clean_passcode
from proctor.services.storage.drive import build_credentials

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
_TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


class PasscodeRegistry:
    """Membership lookup against the passcode spreadsheet."""

    def __init__(self, settings: Settings | None = None, service=None) -> None:
        settings = settings or get_settings()
        self._sheet_id = settings.google_sheet_id
        self._range = settings.google_sheet_range
        self._settings = settings
        self._service = service

    def _sheets(self):
        if self._service is None:
            credentials = build_credentials(self._settings, SHEETS_SCOPES)
            self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._service

    def _fetch_sync(self) -> list[list]:
        try:
            resp = (
                self._sheets()
                .spreadsheets()
                .values()
                .get(spreadsheetId=self._sheet_id, range=self._range)
                .execute()
            )
        except HttpError as exc:
            if exc.resp.status in _TRANSIENT_STATUSES:
                logger.warning("Sheets transient error %s: %s", exc.resp.status, exc)
                raise ConnectionError(f"Sheets API unavailable: {exc}") from exc
            raise StorageError(f"Sheets lookup failed: {exc.reason}") from exc
        return resp.get("values", [])

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    async def fetch_passcodes(self) -> list[str]:
        """Return every non-empty passcode in the configured range."""
        rows = await asyncio.to_thread(self._fetch_sync)
        return [str(cell).strip() for row in rows for cell in row if str(cell).strip()]

    async def contains(self, passcode: str) -> bool:
        """Check whether the cleaned passcode appears in the sheet."""
        cleaned = clean_passcode(passcode)
        try:
            valid = cleaned in await self.fetch_passcodes()
        except ConnectionError as exc:
            raise StorageError(str(exc)) from exc
        logger.info("Passcode %s is %s", cleaned, "VALID" if valid else "INVALID")
        return valid
