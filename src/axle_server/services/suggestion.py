"""Daily workout suggestion.

``compute_daily_suggestion`` is a pure function over recent workout history
and the latest health metrics. It returns a category, intensity and
duration plus the ordered list of rules that fired. ``SuggestionService``
loads its inputs and persists one suggestion per user per day.

Rules, in evaluation order:
    1. Yesterday's workout: avoid lower body after lower body, recover after
       high intensity, alternate cardio and strength. No workout yesterday
       means a strength day.
    2. A same-category streak of 2+ in the last week is broken with a
       random other category that suits yesterday's workout.
    3. Otherwise a category not seen in 14 days (or the least recently
       seen one) is preferred, if it suits yesterday's workout.
    4. Latest recovery, sleep and stress adjust intensity and may force
       low-impact cardio.
    5. Duration follows the last 3 days' workouts, shorter for hard days and
       longer for easy ones.
"""

import math
import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.models.health_report import HealthReport
from axle_server.models.personal_record import PersonalRecord
from axle_server.models.suggested_workout import SuggestedWorkout, SuggestionSource
from axle_server.models.workout import Workout, WorkoutCategory
from axle_server.schemas.metrics import MetricsEnvelope
from axle_server.services.statistics import clamp

logger = structlog.get_logger()

# Category order matters: the first unused category wins ties
ALL_CATEGORIES: tuple[WorkoutCategory, ...] = (
    WorkoutCategory.CROSSFIT,
    WorkoutCategory.STRENGTH,
    WorkoutCategory.HIIT,
    WorkoutCategory.CARDIO,
    WorkoutCategory.POWERLIFTING,
)
LOWER_BODY_CATEGORIES = frozenset({WorkoutCategory.POWERLIFTING.value})
LOWER_BODY_KEYWORDS = ("squat", "deadlift", "leg")
LOW_IMPACT_CATEGORIES = frozenset({WorkoutCategory.CARDIO.value})

DEFAULT_CATEGORY = WorkoutCategory.CARDIO
DEFAULT_INTENSITY = 6
DEFAULT_DURATION = 35

HISTORY_DAYS = 28
STREAK_WINDOW_DAYS = 7
VARIETY_WINDOW_DAYS = 14
DURATION_WINDOW_DAYS = 3
PR_WINDOW_DAYS = 30

DEFAULT_RECOVERY = 75.0
DEFAULT_SLEEP_HOURS = 7.0
DEFAULT_STRESS = 5.0


@dataclass(frozen=True)
class WorkoutHistoryItem:
    """The parts of a past workout the suggestion rules look at."""

    title: str
    category: str
    intensity: int
    duration: int | None
    created_at: datetime

    @classmethod
    def from_workout(cls, workout: Workout) -> "WorkoutHistoryItem":
        return cls(
            title=workout.title or "",
            category=workout.category,
            intensity=workout.intensity,
            duration=workout.duration,
            created_at=workout.created_at,
        )

    def days_before(self, today: date) -> int:
        created = self.created_at
        if created.tzinfo is not None:
            created = created.astimezone(UTC)
        return (today - created.date()).days


@dataclass(frozen=True)
class PersonalRecordItem:
    movement: str
    weight_kg: float | None = None
    reps: int | None = None
    unit: str | None = None
    achieved_on: date | None = None


@dataclass
class SuggestionContext:
    """Inputs to ``compute_daily_suggestion``.

    Attributes:
        last_workouts: Recent workouts, any order
        health_report: Normalized metrics of the latest health report, if any
        recent_prs: Personal records from the last month
    """

    last_workouts: Sequence[WorkoutHistoryItem] = ()
    health_report: MetricsEnvelope | None = None
    recent_prs: Sequence[PersonalRecordItem] = ()


@dataclass
class SuggestionTarget:
    """A computed suggestion and the rules that produced it."""

    category: WorkoutCategory
    intensity: int
    duration: int
    rationale: list[str] = field(default_factory=list)

    def to_request(self) -> dict[str, Any]:
        """Payload stored in ``SuggestedWorkout.request``."""
        return {
            "category": self.category.value,
            "intensity": self.intensity,
            "duration": self.duration,
        }


@dataclass
class HealthAdjustment:
    intensity_delta: int
    force_category: WorkoutCategory | None
    reason: str
    recovery: float
    sleep_hours: float


def is_lower_body(workout: WorkoutHistoryItem) -> bool:
    """Lower-body day: powerlifting, or a title mentioning squats, deadlifts or legs."""
    if workout.category in LOWER_BODY_CATEGORIES:
        return True
    title = workout.title.lower()
    return any(keyword in title for keyword in LOWER_BODY_KEYWORDS)


def find_yesterday_workout(
    workouts: Sequence[WorkoutHistoryItem], today: date
) -> WorkoutHistoryItem | None:
    """Most recent workout logged exactly one day before ``today``."""
    candidates = [w for w in workouts if w.days_before(today) == 1]
    if not candidates:
        return None
    return max(candidates, key=lambda w: _utc(w.created_at))


def find_streak(
    workouts: Sequence[WorkoutHistoryItem], today: date
) -> tuple[int, str | None]:
    """Length and category of the newest same-category run in the last week."""
    recent = sorted(
        (w for w in workouts if w.days_before(today) <= STREAK_WINDOW_DAYS),
        key=lambda w: _utc(w.created_at),
        reverse=True,
    )
    if not recent:
        return 0, None

    category = recent[0].category
    count = 0
    for workout in recent:
        if workout.category != category:
            break
        count += 1
    return count, category


def find_least_recent_category(
    workouts: Sequence[WorkoutHistoryItem], today: date
) -> WorkoutCategory | None:
    """First category unused in 14 days, else the one seen longest ago."""
    recent = [w for w in workouts if w.days_before(today) <= VARIETY_WINDOW_DAYS]
    seen = {w.category for w in recent}

    for category in ALL_CATEGORIES:
        if category.value not in seen:
            return category

    last_seen: dict[str, datetime] = {}
    for workout in recent:
        created = _utc(workout.created_at)
        if workout.category not in last_seen or created > last_seen[workout.category]:
            last_seen[workout.category] = created

    known = [c for c in ALL_CATEGORIES if c.value in last_seen]
    if not known:
        return None
    return min(known, key=lambda c: last_seen[c.value])


def suits_yesterday(
    category: WorkoutCategory,
    yesterday: WorkoutHistoryItem | None,
    recovery_day: bool,
) -> bool:
    """Whether a variety pick fits after yesterday's workout.

    Never repeats yesterday's category or stacks lower body on lower body.
    On a recovery day (yesterday was lower body or high intensity) only
    low-impact categories qualify, so variety can't undo the recovery rule.
    """
    if yesterday is None:
        return True
    if category.value == yesterday.category:
        return False
    if is_lower_body(yesterday) and category.value in LOWER_BODY_CATEGORIES:
        return False
    if recovery_day and category.value not in LOW_IMPACT_CATEGORIES:
        return False
    return True


def analyze_health(envelope: MetricsEnvelope) -> HealthAdjustment:
    """Intensity delta and category override from recovery, sleep and stress."""
    provider = envelope.provider
    recovery = provider.recovery_score
    if recovery is None:
        recovery = envelope.axle.performance_potential
    if recovery is None:
        recovery = DEFAULT_RECOVERY
    sleep_hours = provider.sleep_hours if provider.sleep_hours is not None else DEFAULT_SLEEP_HOURS
    stress = provider.stress if provider.stress is not None else DEFAULT_STRESS

    delta = 0
    force: WorkoutCategory | None = None
    reason = ""

    if recovery < 40 or sleep_hours < 5:
        delta = -3
        force = WorkoutCategory.CARDIO
        reason = "→ Low intensity cardio due to poor recovery/sleep"
    elif recovery < 70 or sleep_hours < 6.5:
        delta = -1
        reason = "→ Moderate intensity due to suboptimal recovery"
    elif recovery > 85 and sleep_hours > 7.5:
        delta = 1
        reason = "→ High recovery allows increased intensity"

    if stress > 7:
        delta = min(delta, -2)
        force = WorkoutCategory.CARDIO
        reason = "→ Low impact cardio due to high stress"

    return HealthAdjustment(
        intensity_delta=delta,
        force_category=force,
        reason=reason,
        recovery=float(recovery),
        sleep_hours=float(sleep_hours),
    )


def adjust_duration(workouts: Sequence[WorkoutHistoryItem], today: date, intensity: int) -> int:
    """Duration from the last 3 days' workouts, biased by intensity, in [15, 90]."""
    recent = sorted(
        (w for w in workouts if w.days_before(today) <= DURATION_WINDOW_DAYS),
        key=lambda w: _utc(w.created_at),
        reverse=True,
    )[:3]
    duration = DEFAULT_DURATION
    if recent:
        average = sum((w.duration or DEFAULT_DURATION) for w in recent) / len(recent)
        duration = _round_half_up(average)

    if intensity >= 8:
        duration = min(duration, 30)
    elif intensity <= 4:
        duration = max(duration, 40)

    return int(clamp(duration, 15, 90))


def compute_daily_suggestion(
    context: SuggestionContext,
    today: date,
    rng: random.Random | None = None,
) -> SuggestionTarget:
    """Derive today's suggested workout.

    Deterministic for fixed inputs, except for the category picked when a
    streak is broken; pass a seeded ``rng`` to pin that down.

    Args:
        context: Workout history, latest health metrics and recent PRs
        today: The day being planned
        rng: Random source for streak breaking

    Returns:
        SuggestionTarget with an ordered rationale
    """
    rng = rng or random.Random()
    workouts = context.last_workouts
    rationale: list[str] = []

    category = DEFAULT_CATEGORY
    intensity = DEFAULT_INTENSITY
    recovery_day = False

    yesterday = find_yesterday_workout(workouts, today)
    if yesterday is not None:
        rationale.append(
            f"Yesterday: {yesterday.title} ({yesterday.category}, {yesterday.intensity}/10)"
        )
        if is_lower_body(yesterday):
            category = WorkoutCategory.CARDIO
            recovery_day = True
            rationale.append("→ Avoiding lower body today after yesterday's strength focus")
        elif yesterday.category == WorkoutCategory.HIIT.value or yesterday.intensity >= 8:
            category = WorkoutCategory.CARDIO
            intensity = max(4, intensity - 2)
            recovery_day = True
            rationale.append("→ Recovery cardio after high-intensity session")
        elif yesterday.category == WorkoutCategory.CARDIO.value:
            category = WorkoutCategory.STRENGTH
            rationale.append("→ Strength training to complement yesterday's cardio")
    else:
        category = WorkoutCategory.STRENGTH
        rationale.append("No workout yesterday")

    streak, streak_category = find_streak(workouts, today)
    if streak >= 2:
        alternatives = [c for c in ALL_CATEGORIES if c.value != streak_category]
        suitable = [c for c in alternatives if suits_yesterday(c, yesterday, recovery_day)]
        category = rng.choice(suitable or alternatives)
        rationale.append(f"→ Breaking {streak}-day {streak_category} streak")
    else:
        least_recent = find_least_recent_category(workouts, today)
        if least_recent is not None and suits_yesterday(least_recent, yesterday, recovery_day):
            category = least_recent
            rationale.append(f"→ Haven't done {least_recent.value} recently")

    if context.health_report is not None:
        health = analyze_health(context.health_report)
        intensity = int(clamp(intensity + health.intensity_delta, 1, 10))
        if health.force_category is not None:
            category = health.force_category
        if health.reason:
            rationale.append(health.reason)
        rationale.append(
            f"Health: Recovery {round(health.recovery)}/100, "
            f"Sleep {health.sleep_hours:g}h → Intensity {intensity}/10"
        )
    intensity = int(clamp(intensity, 1, 10))

    duration = adjust_duration(workouts, today, intensity)

    return SuggestionTarget(
        category=category,
        intensity=intensity,
        duration=duration,
        rationale=rationale,
    )


class SuggestionNotFoundError(Exception):
    """No suggestion exists for the user and day."""


class SuggestionAlreadyStartedError(Exception):
    """The suggestion already has a workout attached."""


class SuggestionService:
    """Loads suggestion inputs and persists daily suggestions.

    The (user_id, date) unique constraint arbitrates concurrent inserts;
    a losing insert is reported as ``None`` rather than raised.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize suggestion service.

        Args:
            session: Database session
        """
        self.session = session
        self.logger = logger.bind(service="suggestion")

    async def load_context(self, user_id: str, today: date) -> SuggestionContext:
        """Load 28 days of workouts, the latest health report and recent PRs."""
        since = datetime.combine(today, time.min, tzinfo=UTC) - timedelta(days=HISTORY_DAYS)
        workouts_stmt = (
            select(Workout)
            .where(Workout.user_id == user_id)
            .where(Workout.created_at >= since)
            .order_by(Workout.created_at.desc())
        )
        workouts = (await self.session.execute(workouts_stmt)).scalars().all()

        report_stmt = (
            select(HealthReport)
            .where(HealthReport.user_id == user_id)
            .where(HealthReport.date <= today)
            .order_by(HealthReport.date.desc())
            .limit(1)
        )
        report = (await self.session.execute(report_stmt)).scalar_one_or_none()

        prs_stmt = (
            select(PersonalRecord)
            .where(PersonalRecord.user_id == user_id)
            .where(PersonalRecord.date >= today - timedelta(days=PR_WINDOW_DAYS))
            .order_by(PersonalRecord.date.desc())
        )
        prs = (await self.session.execute(prs_stmt)).scalars().all()

        return SuggestionContext(
            last_workouts=[WorkoutHistoryItem.from_workout(w) for w in workouts],
            health_report=MetricsEnvelope.normalize(report.metrics) if report else None,
            recent_prs=[
                PersonalRecordItem(
                    movement=pr.movement,
                    weight_kg=pr.weight_kg,
                    reps=pr.reps,
                    unit=pr.unit,
                    achieved_on=pr.date,
                )
                for pr in prs
            ],
        )

    async def compute_for_user(
        self,
        user_id: str,
        today: date | None = None,
        rng: random.Random | None = None,
    ) -> SuggestionTarget:
        """Compute (without storing) today's suggestion for a user."""
        today = today or datetime.now(UTC).date()
        context = await self.load_context(user_id, today)
        target = compute_daily_suggestion(context, today, rng)
        self.logger.debug(
            "Computed suggestion",
            user_id=user_id,
            category=target.category.value,
            intensity=target.intensity,
            duration=target.duration,
        )
        return target

    async def get_for_day(self, user_id: str, day: date) -> SuggestedWorkout | None:
        stmt = select(SuggestedWorkout).where(
            SuggestedWorkout.user_id == user_id,
            SuggestedWorkout.date == day,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def exists(self, user_id: str, day: date) -> bool:
        stmt = select(SuggestedWorkout.id).where(
            SuggestedWorkout.user_id == user_id,
            SuggestedWorkout.date == day,
        )
        return (await self.session.execute(stmt)).first() is not None

    async def insert(
        self,
        user_id: str,
        day: date,
        target: SuggestionTarget,
        source: SuggestionSource,
    ) -> SuggestedWorkout | None:
        """Insert a suggestion in its own transaction.

        Returns:
            The new row, or None if another writer already inserted one for
            (user, day)
        """
        row = SuggestedWorkout(
            user_id=user_id,
            date=day,
            request=target.to_request(),
            rationale=list(target.rationale),
            source=source.value,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            self.logger.info(
                "Suggestion already exists (concurrent insert)",
                user_id=user_id,
                date=day.isoformat(),
            )
            return None
        return row

    async def get_or_create_today(
        self,
        user_id: str,
        today: date | None = None,
    ) -> tuple[SuggestedWorkout, bool]:
        """Return today's suggestion, computing it on demand if missing.

        Returns:
            Tuple of (suggestion, created)
        """
        today = today or datetime.now(UTC).date()
        existing = await self.get_for_day(user_id, today)
        if existing is not None:
            return existing, False

        target = await self.compute_for_user(user_id, today)
        row = await self.insert(user_id, today, target, SuggestionSource.ON_DEMAND)
        if row is not None:
            self.logger.info("Created on-demand suggestion", user_id=user_id)
            return row, True

        winner = await self.get_for_day(user_id, today)
        if winner is None:
            raise SuggestionNotFoundError(f"Suggestion for {user_id} on {today} vanished")
        return winner, False

    async def start_suggestion(
        self,
        user_id: str,
        workout_id: str,
        today: date | None = None,
    ) -> SuggestedWorkout:
        """Attach the workout created from today's suggestion.

        The workout id can only be set once.

        Raises:
            SuggestionNotFoundError: No suggestion for today
            SuggestionAlreadyStartedError: A workout is already attached
        """
        today = today or datetime.now(UTC).date()
        row = await self.get_for_day(user_id, today)
        if row is None:
            raise SuggestionNotFoundError(f"No suggestion for {today}")

        stmt = (
            update(SuggestedWorkout)
            .where(SuggestedWorkout.id == row.id)
            .where(SuggestedWorkout.workout_id.is_(None))
            .values(workout_id=workout_id, updated_at=datetime.now(UTC))
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            message = f"Suggestion already started with workout {row.workout_id}"
            await self.session.rollback()
            raise SuggestionAlreadyStartedError(message)
        await self.session.commit()
        await self.session.refresh(row)

        self.logger.info("Suggestion started", user_id=user_id, workout_id=workout_id)
        return row

    async def count_for_day(self, day: date) -> int:
        """Number of suggestions stored for a day, across users."""
        stmt = (
            select(func.count())
            .select_from(SuggestedWorkout)
            .where(SuggestedWorkout.date == day)
        )
        return int((await self.session.execute(stmt)).scalar_one())


def _utc(value: datetime) -> datetime:
    return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
