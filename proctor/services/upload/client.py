"""
Async HTTP client for the Proctor server API.

Uses ``httpx.AsyncClient`` so uploads run concurrently with recording on
the session's event loop.
"""

import logging

import httpx

from proctor.core.config import get_settings
from proctor.core.exceptions import APIError, UploadFailedError
from proctor.core.models import (
    CombineRequest,
    CombineResponse,
    CompletionResponse,
    PasscodeValidationResponse,
    Segment,
    TestType,
    UploadMetadata,
    UploadResponse,
)

logger = logging.getLogger(__name__)


class ProctorAPIClient:
    """Thin async wrapper around httpx for calling the Proctor backend.

    All methods return parsed response models or raise ``APIError`` with
    user-friendly messages for display in the wizard.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Base URL of the Proctor FastAPI backend.
            timeout: Request timeout in seconds (uploads can be large).
            transport: Optional httpx transport (e.g. ``ASGITransport`` in tests).
        """
        settings = get_settings()
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or settings.api_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with user-friendly error handling.

        Raises:
            APIError: On connection, timeout, HTTP status, or network errors.
        """
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.ConnectError:
            raise APIError(
                "Could not reach the test server. Check your connection and try again.",
                category="connection",
            ) from None
        except httpx.TimeoutException:
            raise APIError(
                "Request timed out. The server may be overloaded.",
                category="timeout",
            ) from None
        except httpx.HTTPStatusError as exc:
            try:
                body = exc.response.json()
                detail = body.get("detail") or body.get("error") or exc.response.text
            except Exception:
                detail = exc.response.text or str(exc)
            raise APIError(str(detail), category="http") from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

    # -- passcodes --

    async def validate_passcode(self, passcode: str) -> bool:
        resp = await self._request("POST", "/api/validate-passcode", json={"passcode": passcode})
        return PasscodeValidationResponse.model_validate(resp.json()).valid

    async def check_completion(self, passcode: str) -> CompletionResponse:
        resp = await self._request("POST", "/api/check-completion", json={"passcode": passcode})
        return CompletionResponse.model_validate(resp.json())

    # -- uploads --

    async def upload_segment(
        self, segment: Segment, metadata: UploadMetadata, destination: str
    ) -> UploadResponse:
        """Upload one segment as multipart form data.

        Raises:
            UploadFailedError: If the request fails or the server reports failure.
        """
        files = {"video": (destination, segment.data, segment.mime_type.split(";")[0])}
        data = {
            "first_name": metadata.first_name,
            "last_name": metadata.last_name,
            "passcode": metadata.passcode,
            "question_number": str(metadata.question_number),
            "timestamp": metadata.timestamp.isoformat(),
            "test_type": metadata.test_type.value,
        }
        try:
            resp = await self._request("POST", "/api/upload", data=data, files=files)
        except APIError as exc:
            raise UploadFailedError(metadata.question_number, exc.message) from exc

        result = UploadResponse.model_validate(resp.json())
        if not result.success:
            raise UploadFailedError(metadata.question_number, "server reported failure")
        return result

    # -- merge trigger --

    async def request_merge(
        self, first_name: str, last_name: str, passcode: str, test_type: TestType
    ) -> CombineResponse:
        body = CombineRequest(
            first_name=first_name,
            last_name=last_name,
            passcode=passcode,
            test_type=test_type,
        )
        resp = await self._request("POST", "/api/combine", json=body.model_dump(mode="json"))
        return CombineResponse.model_validate(resp.json())
