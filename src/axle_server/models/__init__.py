"""Database models."""

from axle_server.models.base import Base
from axle_server.models.health_report import HealthReport
from axle_server.models.job_run import JobRun, JobRunStatus, JobTrigger
from axle_server.models.personal_record import PersonalRecord
from axle_server.models.profile import Profile
from axle_server.models.suggested_workout import SuggestedWorkout, SuggestionSource
from axle_server.models.wearable import ConnectionStatus, WearableConnection
from axle_server.models.workout import Workout, WorkoutCategory

__all__ = [
    "Base",
    "ConnectionStatus",
    "HealthReport",
    "JobRun",
    "JobRunStatus",
    "JobTrigger",
    "PersonalRecord",
    "Profile",
    "SuggestedWorkout",
    "SuggestionSource",
    "WearableConnection",
    "Workout",
    "WorkoutCategory",
]
