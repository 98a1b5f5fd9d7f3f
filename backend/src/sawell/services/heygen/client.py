"""HeyGen API client for polling video generation status."""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from sawell.core.config import Settings
from sawell.services.exceptions import UpstreamNotConfiguredError, UpstreamStatusError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UpstreamVideoStatus:
    """Status fields reported by HeyGen. Absent fields are None."""

    status: str | None = None
    video_url: str | None = None
    progress: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_detail: str | None = None


def _text(value: Any) -> str | None:
    """Return value as a non-empty string, or None."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text or None


def _progress(value: Any) -> int | None:
    """Only numeric progress is meaningful; anything else counts as absent."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def parse_status_payload(body: Any) -> UpstreamVideoStatus:
    """Extract status fields from a video_status.get response body.

    HeyGen wraps the payload as ``{"code": 100, "data": {...}}``; a bare
    payload object is accepted as well.

    Raises:
        UpstreamStatusError: If the body is not a JSON object
    """
    if not isinstance(body, dict):
        raise UpstreamStatusError(f"Unexpected response body type: {type(body).__name__}")

    payload = body.get("data") or body
    if not isinstance(payload, dict):
        raise UpstreamStatusError(f"Unexpected data field type: {type(payload).__name__}")

    error = payload.get("error")
    if not isinstance(error, dict):
        error = {}

    return UpstreamVideoStatus(
        status=_text(payload.get("status")),
        video_url=_text(payload.get("video_url")) or _text(payload.get("url")),
        progress=_progress(payload.get("progress")),
        error_code=_text(error.get("code")),
        error_message=_text(error.get("message")),
        error_detail=_text(error.get("detail")),
    )


class HeyGenClient:
    """Status polling client for the HeyGen video API.

    One instance is created per process and shared by all requests; it owns
    a pooled httpx.AsyncClient that must be closed with ``aclose()``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.heygen.com",
        timeout_seconds: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HeyGen client.

        Args:
            api_key: HeyGen API key (from HEYGEN_API_KEY env var)
            base_url: API base URL
            timeout_seconds: Per-request timeout
            transport: Optional httpx transport (tests inject MockTransport)

        Raises:
            UpstreamNotConfiguredError: If api_key is empty
        """
        if not api_key:
            raise UpstreamNotConfiguredError("HEYGEN_API_KEY not configured")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json", "X-Api-Key": api_key},
            timeout=timeout_seconds,
            transport=transport,
        )

    async def get_video_status(self, video_id: str) -> UpstreamVideoStatus:
        """Fetch the current status of one video.

        Args:
            video_id: HeyGen video id

        Returns:
            Parsed status fields

        Raises:
            UpstreamStatusError: Non-2xx response, network error, timeout or malformed body
        """
        try:
            response = await self._client.get("/v1/video_status.get", params={"video_id": video_id})
        except httpx.TimeoutException as e:
            raise UpstreamStatusError(
                f"Request timeout after {self.timeout_seconds}s: {str(e)}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamStatusError(f"Network error: {str(e)}") from e

        if not response.is_success:
            raise UpstreamStatusError(
                f"HeyGen returned {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamStatusError(f"Invalid JSON from HeyGen: {str(e)}") from e

        return parse_status_payload(body)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_status_client(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> HeyGenClient | None:
    """Create the process-wide status client, or None when no API key is set.

    A missing key is not fatal: video listing then serves stored data only.
    """
    try:
        return HeyGenClient(
            api_key=settings.heygen_api_key,
            base_url=settings.heygen_api_base_url,
            timeout_seconds=settings.reconcile_item_timeout_seconds,
            transport=transport,
        )
    except UpstreamNotConfiguredError:
        logger.warning("heygen.not_configured", reason="HEYGEN_API_KEY empty")
        return None
