"""
Automation Runner HTTP Client

Async httpx client for the external automation runner (Make.com-style
webhooks). One call per dispatch: retries are the caller's decision, so
this client never loops. Anything other than a 2xx answer within the
timeout is raised as a TransportError.
"""
import os
import time
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from brandhub.core.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass
class RunnerResponse:
    """Successful runner answer"""
    status: int
    body: Any
    duration_ms: int


class HTTPClientConfig:
    """Configuration for the runner client."""

    def __init__(self):
        self.timeout = float(os.getenv('HTTP_TIMEOUT', '30.0'))
        self.max_connections = int(os.getenv('HTTP_MAX_CONNECTIONS', '100'))
        self.max_keepalive_connections = int(os.getenv('HTTP_MAX_KEEPALIVE', '20'))
        self.user_agent = os.getenv('HTTP_USER_AGENT', 'BrandHub-Automation/1.0')

    def to_limits(self):
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections
        )

    def to_timeout(self, seconds: Optional[float] = None):
        return httpx.Timeout(seconds if seconds is not None else self.timeout)


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text}


class AutomationRunnerClient:
    """Dispatches JSON payloads to the automation runner."""

    def __init__(self, config: Optional[HTTPClientConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or HTTPClientConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _ensure_client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=self.config.to_limits(),
                timeout=self.config.to_timeout(),
                headers={'User-Agent': self.config.user_agent},
                transport=self._transport,
            )

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def dispatch(self, url: str, payload: Dict[str, Any],
                       timeout: Optional[float] = None) -> RunnerResponse:
        """
        POST a payload to the runner.

        Args:
            url: Runner webhook URL
            payload: JSON body
            timeout: Per-call timeout in seconds (caller supplied)

        Returns:
            RunnerResponse for 2xx answers

        Raises:
            TransportError: On timeout, connection failure, an unusable URL or non-2xx status
        """
        await self._ensure_client()
        started = time.monotonic()

        try:
            response = await self._client.post(
                url,
                json=payload,
                timeout=self.config.to_timeout(timeout),
            )
        except httpx.TimeoutException as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Runner dispatch to {url} timed out after {duration_ms}ms")
            raise TransportError(TransportError.TIMEOUT, "timeout", duration_ms=duration_ms) from e
        except httpx.HTTPError as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Runner dispatch to {url} failed: {e}")
            raise TransportError(
                TransportError.CONNECTION, f"connection error: {e}", duration_ms=duration_ms
            ) from e
        except (httpx.InvalidURL, httpx.StreamError) as e:
            # Not HTTPError subclasses; a malformed webhook URL lands here
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.warning(f"Runner dispatch to {url!r} rejected before sending: {e}")
            raise TransportError(
                TransportError.CONNECTION, f"connection error: invalid request: {e}", duration_ms=duration_ms
            ) from e

        duration_ms = int((time.monotonic() - started) * 1000)
        body = _parse_body(response)

        if not response.is_success:
            logger.warning(f"Runner dispatch to {url} returned {response.status_code}")
            raise TransportError(
                TransportError.HTTP_STATUS,
                f"runner returned HTTP {response.status_code}",
                status=response.status_code,
                body=body,
                duration_ms=duration_ms,
            )

        return RunnerResponse(status=response.status_code, body=body, duration_ms=duration_ms)


_runner_client: Optional[AutomationRunnerClient] = None


def get_runner_client() -> AutomationRunnerClient:
    """Get the global runner client instance"""
    global _runner_client
    if _runner_client is None:
        _runner_client = AutomationRunnerClient()
    return _runner_client


async def close_runner_client():
    """Close the global runner client."""
    global _runner_client
    if _runner_client:
        await _runner_client.close()
        _runner_client = None
