"""Business logic services."""

from axle_server.services.axle import AxleService, DerivedMetrics
from axle_server.services.baseline import BaselineService
from axle_server.services.daily_job import DailySuggestionJob, JobSummary
from axle_server.services.environment import EnvironmentData, EnvironmentService
from axle_server.services.fatigue import compute_fatigue
from axle_server.services.health_sync import (
    HealthSyncResult,
    HealthSyncService,
    HealthSyncStatus,
)
from axle_server.services.scheduler import SuggestionScheduler
from axle_server.services.suggestion import (
    SuggestionAlreadyStartedError,
    SuggestionContext,
    SuggestionNotFoundError,
    SuggestionService,
    SuggestionTarget,
    compute_daily_suggestion,
)

__all__ = [
    "AxleService",
    "BaselineService",
    "DailySuggestionJob",
    "DerivedMetrics",
    "EnvironmentData",
    "EnvironmentService",
    "HealthSyncResult",
    "HealthSyncService",
    "HealthSyncStatus",
    "JobSummary",
    "SuggestionAlreadyStartedError",
    "SuggestionContext",
    "SuggestionNotFoundError",
    "SuggestionScheduler",
    "SuggestionService",
    "SuggestionTarget",
    "compute_daily_suggestion",
]
