"""Pydantic schemas for stored payloads and API responses."""

from axle_server.schemas.metrics import (
    ENVELOPE_VERSION,
    AxleScores,
    MetricsEnvelope,
    ProviderMetrics,
    WeatherSnapshot,
)
from axle_server.schemas.suggestion import StartSuggestionRequest, SuggestionResponse

__all__ = [
    "ENVELOPE_VERSION",
    "AxleScores",
    "MetricsEnvelope",
    "ProviderMetrics",
    "StartSuggestionRequest",
    "SuggestionResponse",
    "WeatherSnapshot",
]
