"""HTTP client for partner directory instances.

This module provides the PartnerClient class used for every outbound call to
a federation instance: directory listings, submissions and health checks.
All transport problems (network errors, timeouts, non-2xx responses and
malformed bodies) surface as PartnerUnavailableError so that the
orchestration layer can record them as per-partner outcomes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from launchpad_federation.core.errors import PartnerUnavailableError
from launchpad_federation.core.settings import settings

logger = logging.getLogger(__name__)

DIRECTORIES_PATH = "/federation/directories"
SUBMIT_PATH = "/federation/submit"
HEALTH_PATH = "/federation/health"
INFO_PATH = "/federation/info"

INSTANCE_ID_HEADER = "X-Federation-Instance-Id"


@dataclass(frozen=True)
class PartnerClientConfig:
    """Immutable configuration for outbound partner traffic."""

    instance_id: str
    user_agent: str
    timeout_seconds: float


def load_partner_config() -> PartnerClientConfig:
    """Build configuration object from global settings."""

    return PartnerClientConfig(
        instance_id=settings.federation_instance_id,
        user_agent=settings.federation_user_agent,
        timeout_seconds=float(settings.partner_request_timeout_seconds),
    )


def join_url(base_url: str, path: str) -> str:
    """Join a partner base URL and an API path without doubling slashes."""
    return f"{base_url.rstrip('/')}{path}"


class PartnerClient:
    """Async HTTP client wrapper for partner instance interactions."""

    def __init__(
        self,
        config: PartnerClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_partner_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                    follow_redirects=False,
                )
        return self._client

    def _build_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
            INSTANCE_ID_HEADER: self.config.instance_id,
        }

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        url: str
        json_data: Any | None = None
        params: Mapping[str, Any] | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()

        try:
            response = await client.request(
                params.method,
                params.url,
                json=params.json_data,
                params=params.params,
                headers=self._build_headers(),
            )
        except httpx.TimeoutException as exc:
            raise PartnerUnavailableError(
                f"Request timeout after {self.config.timeout_seconds:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise PartnerUnavailableError(f"Partner request failed: {exc}") from exc
        except Exception as exc:
            raise PartnerUnavailableError(f"Partner request failed: {exc}") from exc

        if not response.is_success:
            raise PartnerUnavailableError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise PartnerUnavailableError("Partner returned a malformed JSON body") from exc

    async def list_directories(self, base_url: str) -> list[Mapping[str, Any]]:
        """Fetch the raw directory listing advertised by a partner."""

        response = await self._request(
            self.RequestParams(method="GET", url=join_url(base_url, DIRECTORIES_PATH))
        )
        payload = self._decode(response)

        # Partners answer either with a bare list or with {"directories": [...]}.
        if isinstance(payload, Mapping):
            payload = payload.get("directories", [])
        if not isinstance(payload, list):
            raise PartnerUnavailableError("Partner directory listing is not a list")
        return [item for item in payload if isinstance(item, Mapping)]

    async def submit(self, instance_url: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Submit content to a partner directory.

        Returns:
            The decoded partner response, guaranteed to carry a
            ``submission_id``.

        Raises:
            PartnerUnavailableError: For any non-success outcome.
        """

        response = await self._request(
            self.RequestParams(
                method="POST",
                url=join_url(instance_url, SUBMIT_PATH),
                json_data=dict(payload),
            )
        )
        body = self._decode(response)
        if not isinstance(body, Mapping):
            raise PartnerUnavailableError("Partner submission response is not an object")
        if not body.get("success", False):
            raise PartnerUnavailableError(str(body.get("error") or "Submission failed"))
        submission_id = body.get("submission_id")
        if submission_id in (None, ""):
            raise PartnerUnavailableError("Partner response is missing submission_id")
        return dict(body)

    async def fetch_health(self, base_url: str) -> dict[str, Any]:
        """Return the partner's health document."""

        response = await self._request(
            self.RequestParams(method="GET", url=join_url(base_url, HEALTH_PATH))
        )
        body = self._decode(response)
        return dict(body) if isinstance(body, Mapping) else {}

    async def fetch_info(self, base_url: str) -> dict[str, Any]:
        """Return the partner's federation info document."""

        response = await self._request(
            self.RequestParams(method="GET", url=join_url(base_url, INFO_PATH))
        )
        body = self._decode(response)
        return dict(body) if isinstance(body, Mapping) else {}

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _PartnerClientSingleton:
    """Singleton wrapper for PartnerClient."""

    _instance: PartnerClient | None = None

    @classmethod
    def get_instance(cls) -> PartnerClient:
        """Get or create the singleton PartnerClient instance."""
        if cls._instance is None:
            cls._instance = PartnerClient()
        return cls._instance


def get_partner_client() -> PartnerClient:
    """Return a singleton partner client instance."""
    return _PartnerClientSingleton.get_instance()
