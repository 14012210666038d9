"""Cloud agent execution service client with retry and backoff.

Only the status side is consumed here: launches happen elsewhere, this
client reads a run's status so its stage can be fed to the auto-move
detector.
"""
import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from ticketflow.config.settings import Settings
from ticketflow.schemas.agent_run import RunStage

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class CloudAgentError(Exception):
    """Exception for cloud agent API errors."""

    def __init__(
        self,
        status_code: int,
        message: str,
        response_body: Optional[dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"Cloud agent API error {status_code}: {message}")


# Service status -> run stage
_STATUS_STAGES = {
    "FINISHED": RunStage.COMPLETED,
    "COMPLETED": RunStage.COMPLETED,
    "FAILED": RunStage.FAILED,
    "ERROR": RunStage.FAILED,
    "CANCELLED": RunStage.FAILED,
    "EXPIRED": RunStage.FAILED,
}


def map_status(raw_status: Optional[str]) -> RunStage:
    """Map a service status string to a run stage; unknown means still polling."""
    return _STATUS_STAGES.get((raw_status or "").upper(), RunStage.POLLING)


# =============================================================================
# Client
# =============================================================================


class CloudAgentClient:
    """Reads agent run status from the cloud agent service."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.base_url = settings.cloud_agent_api_url.rstrip("/")
        self.auth = aiohttp.BasicAuth(settings.cloud_agent_api_key, "")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.cloud_agent_timeout_seconds)
            self._session = aiohttp.ClientSession(
                auth=self.auth,
                timeout=timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Make HTTP request with retry and exponential backoff.

        Raises:
            CloudAgentError: On 4xx client errors (no retry), or on 429/5xx
                after all retries are exhausted.
            asyncio.TimeoutError, aiohttp.ClientError: When every attempt
                failed at the transport level.
        """
        url = f"{self.base_url}{endpoint}"
        session = await self._get_session()

        last_error: Optional[Exception] = None
        max_retries = self.settings.cloud_agent_max_retries

        for attempt in range(max_retries + 1):
            start_time = time.monotonic()
            try:
                async with session.request(method, url, json=json_data) as response:
                    duration_ms = (time.monotonic() - start_time) * 1000
                    try:
                        response_body = await response.json()
                    except (aiohttp.ContentTypeError, ValueError):
                        response_body = {}

                    logger.info(
                        "Cloud agent API response",
                        extra={
                            "method": method,
                            "url": url,
                            "status": response.status,
                            "duration_ms": round(duration_ms, 2),
                        },
                    )

                    if 200 <= response.status < 300:
                        return response_body

                    # 429: Rate limited - retry after the advertised delay
                    if response.status == 429:
                        last_error = CloudAgentError(
                            status_code=response.status,
                            message="Rate limited",
                            response_body=response_body,
                        )
                        if attempt < max_retries:
                            retry_after = response.headers.get("Retry-After")
                            backoff = int(retry_after) if retry_after and retry_after.isdigit() else 2 ** attempt * 5
                            logger.warning(
                                f"Cloud agent API rate limited, retrying in {backoff}s",
                                extra={"attempt": attempt + 1, "backoff_seconds": backoff},
                            )
                            await asyncio.sleep(backoff)
                            continue
                        raise last_error

                    # 4xx: Client error - don't retry
                    if 400 <= response.status < 500:
                        raise CloudAgentError(
                            status_code=response.status,
                            message=str(response_body.get("error") or response.reason),
                            response_body=response_body,
                        )

                    # 5xx: Server error - retry with backoff
                    last_error = CloudAgentError(
                        status_code=response.status,
                        message=response.reason or "Server error",
                        response_body=response_body,
                    )
                    if attempt < max_retries:
                        backoff = 2 ** attempt
                        logger.warning(
                            f"Cloud agent API {response.status}, retrying in {backoff}s",
                            extra={"attempt": attempt + 1, "backoff_seconds": backoff},
                        )
                        await asyncio.sleep(backoff)
                        continue
                    raise last_error

            except asyncio.TimeoutError:
                last_error = asyncio.TimeoutError(
                    f"Request timed out after {self.settings.cloud_agent_timeout_seconds}s"
                )
                logger.warning(
                    "Cloud agent API timeout",
                    extra={"method": method, "url": url, "attempt": attempt + 1},
                )
                if attempt < max_retries:
                    await asyncio.sleep(2 ** attempt)
                    continue

            except aiohttp.ClientError as e:
                last_error = e
                logger.warning(
                    f"Cloud agent API connection error: {e}",
                    extra={"method": method, "url": url, "attempt": attempt + 1},
                )
                if attempt < max_retries:
                    await asyncio.sleep(2 ** attempt)
                    continue

        raise last_error

    async def get_status(self, agent_id: str) -> dict[str, Any]:
        """Fetch one agent run: ``{"id", "status", "summary", ...}``."""
        return await self._request("GET", f"/v0/agents/{agent_id}")
