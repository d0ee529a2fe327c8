"""Base class and snapshot type for wearable provider adapters."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any, ClassVar

import httpx
import structlog

from axle_server.core.config import settings
from axle_server.providers.errors import (
    ProviderAuthError,
    ProviderResponseError,
    ProviderUnavailableError,
)

logger = structlog.get_logger()

# (user_id, provider_id) -> decrypted access token, or None
AccessTokenLoader = Callable[[str, str], Awaitable[str | None]]


@dataclass
class HealthSnapshot:
    """One day of normalized signals from a wearable.

    Every metric is optional: providers expose different subsets and a
    missing value must stay None rather than become 0.
    """

    date: date
    hrv: float | None = None
    resting_hr: float | None = None
    sleep_score: float | None = None
    sleep_hours: float | None = None
    stress: float | None = None
    steps: float | None = None
    calories: float | None = None
    recovery_score: float | None = None
    sleep_midpoint_sd: float | None = None
    wake_time: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        """True if at least one metric is present."""
        return any(
            value is not None
            for value in (
                self.hrv,
                self.resting_hr,
                self.sleep_score,
                self.sleep_hours,
                self.stress,
                self.steps,
                self.calories,
                self.recovery_score,
            )
        )


class HealthProvider(ABC):
    """Adapter for one wearable vendor's API.

    Subclasses set ``provider_id`` and implement ``has_config`` and
    ``fetch_latest``. ``fetch_latest`` raises on unrecoverable failure; the
    caller classifies and records the error.
    """

    provider_id: ClassVar[str]
    base_url: ClassVar[str] = ""

    def __init__(
        self,
        token_loader: AccessTokenLoader | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize provider.

        Args:
            token_loader: Resolves a user's decrypted access token
            transport: httpx transport override (tests use ``httpx.MockTransport``)
        """
        self.token_loader = token_loader
        self.transport = transport
        self.logger = logger.bind(provider=self.provider_id)

    @abstractmethod
    def has_config(self) -> bool:
        """Return True if app credentials for this provider are configured."""

    @abstractmethod
    async def fetch_latest(self, user_id: str) -> HealthSnapshot:
        """Fetch the most recent day of data for a user."""

    async def _access_token(self, user_id: str) -> str:
        token = await self.token_loader(user_id, self.provider_id) if self.token_loader else None
        if not token:
            raise ProviderAuthError(self.provider_id, "No access token on file")
        return token

    def _client(self, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(settings.provider_timeout_seconds),
            transport=self.transport,
        )

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """GET a JSON object, mapping HTTP failures onto provider errors.

        Raises:
            ProviderAuthError: On 401/403
            ProviderUnavailableError: On 429 or 5xx
            ProviderResponseError: On other 4xx or a non-object body
        """
        response = await client.get(path, params=params)
        status = response.status_code

        if status in (401, 403):
            raise ProviderAuthError(self.provider_id, f"Token rejected (HTTP {status})", status)
        if status == 429 or status >= 500:
            raise ProviderUnavailableError(self.provider_id, f"HTTP {status} from {path}", status)
        if status >= 400:
            raise ProviderResponseError(self.provider_id, f"HTTP {status} from {path}", status)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider_id, f"Invalid JSON from {path}") from e
        if not isinstance(body, dict):
            raise ProviderResponseError(self.provider_id, f"Unexpected payload from {path}")
        return body
