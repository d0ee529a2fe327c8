"""Tests for the daily suggestion rules and service."""

import asyncio
import random
from collections.abc import AsyncIterator
from datetime import date, timedelta
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from axle_server.models import (
    Base,
    PersonalRecord,
    SuggestedWorkout,
    SuggestionSource,
    WorkoutCategory,
)
from axle_server.schemas.metrics import AxleScores, MetricsEnvelope, ProviderMetrics
from axle_server.services.suggestion import (
    SuggestionAlreadyStartedError,
    SuggestionContext,
    SuggestionNotFoundError,
    SuggestionService,
    SuggestionTarget,
    WorkoutHistoryItem,
    adjust_duration,
    compute_daily_suggestion,
    find_least_recent_category,
    find_streak,
    is_lower_body,
)
from tests.fixtures import TODAY, at, make_report, make_workout


def item(
    days_ago: int,
    category: str = "Strength",
    intensity: int = 6,
    duration: int | None = 45,
    title: str = "Workout",
    hour: int = 8,
) -> WorkoutHistoryItem:
    return WorkoutHistoryItem(
        title=title,
        category=category,
        intensity=intensity,
        duration=duration,
        created_at=at(TODAY - timedelta(days=days_ago), hour),
    )


def health(**provider: float) -> MetricsEnvelope:
    return MetricsEnvelope(provider=ProviderMetrics(**provider))


def suggest(*workouts: WorkoutHistoryItem, report: MetricsEnvelope | None = None, seed: int = 0):
    context = SuggestionContext(last_workouts=list(workouts), health_report=report)
    return compute_daily_suggestion(context, TODAY, random.Random(seed))


class TestHistoryRules:
    def test_fresh_start(self) -> None:
        target = suggest()

        assert target.category == WorkoutCategory.CROSSFIT
        assert target.intensity == 6
        assert target.duration == 35
        assert target.rationale == ["No workout yesterday", "→ Haven't done CrossFit recently"]

    def test_lower_body_yesterday_means_cardio(self) -> None:
        target = suggest(item(1, "Powerlifting", intensity=7, title="Back Squat"))

        assert target.category == WorkoutCategory.CARDIO
        assert target.rationale == [
            "Yesterday: Back Squat (Powerlifting, 7/10)",
            "→ Avoiding lower body today after yesterday's strength focus",
        ]
        assert target.duration == 45

    def test_lower_body_detected_from_title(self) -> None:
        target = suggest(item(1, "Strength", title="Heavy Deadlift Day"))

        assert target.category == WorkoutCategory.CARDIO
        assert any("lower body" in reason for reason in target.rationale)

    @pytest.mark.parametrize("seed", range(10))
    def test_streak_after_lower_body_still_cardio(self, seed: int) -> None:
        target = suggest(item(1, "Powerlifting"), item(2, "Powerlifting"), seed=seed)

        assert target.category == WorkoutCategory.CARDIO
        assert "→ Breaking 2-day Powerlifting streak" in target.rationale

    def test_high_intensity_yesterday_means_easier_cardio(self) -> None:
        target = suggest(item(1, "HIIT", intensity=9, duration=20))

        assert target.category == WorkoutCategory.CARDIO
        assert target.intensity == 4
        assert "→ Recovery cardio after high-intensity session" in target.rationale
        assert target.duration == 40

    def test_variety_prefers_least_recent_category(self) -> None:
        target = suggest(
            item(1, "Cardio"),
            item(3, "Strength"),
            item(5, "HIIT"),
            item(8, "CrossFit"),
            item(10, "Powerlifting"),
        )

        assert target.category == WorkoutCategory.POWERLIFTING
        assert target.rationale == [
            "Yesterday: Workout (Cardio, 6/10)",
            "→ Strength training to complement yesterday's cardio",
            "→ Haven't done Powerlifting recently",
        ]

    def test_streak_is_broken_with_seeded_choice(self) -> None:
        workouts = (item(1, "Strength"), item(2, "Strength"), item(4, "HIIT"))

        first = suggest(*workouts, seed=7)
        second = suggest(*workouts, seed=7)

        assert first.category != WorkoutCategory.STRENGTH
        assert first.category == second.category
        assert first.rationale == second.rationale
        assert "→ Breaking 2-day Strength streak" in first.rationale


class TestHealthRules:
    def test_poor_recovery_and_sleep(self) -> None:
        target = suggest(report=health(recovery_score=30, sleep_hours=4))

        assert target.category == WorkoutCategory.CARDIO
        assert target.intensity <= max(1, 6 - 3)
        assert "→ Low intensity cardio due to poor recovery/sleep" in target.rationale
        assert target.rationale[-1] == "Health: Recovery 30/100, Sleep 4h → Intensity 3/10"
        assert target.duration == 40

    def test_suboptimal_recovery(self) -> None:
        target = suggest(report=health(recovery_score=65, sleep_hours=7))

        assert target.intensity == 5
        assert "→ Moderate intensity due to suboptimal recovery" in target.rationale

    def test_high_recovery_raises_intensity(self) -> None:
        target = suggest(report=health(recovery_score=92, sleep_hours=8.2, stress=2))

        assert target.intensity == 7
        assert "→ High recovery allows increased intensity" in target.rationale

    def test_high_stress_forces_low_impact(self) -> None:
        target = suggest(report=health(recovery_score=92, sleep_hours=8.2, stress=8))

        assert target.category == WorkoutCategory.CARDIO
        assert target.intensity == 4
        assert "→ Low impact cardio due to high stress" in target.rationale

    def test_recovery_falls_back_to_performance_potential(self) -> None:
        report = MetricsEnvelope(
            provider=ProviderMetrics(sleep_hours=8),
            axle=AxleScores(performance_potential=35),
        )

        target = suggest(report=report)

        assert target.category == WorkoutCategory.CARDIO
        assert "Health: Recovery 35/100, Sleep 8h → Intensity 3/10" in target.rationale

    def test_empty_report_uses_defaults(self) -> None:
        target = suggest(report=MetricsEnvelope())

        assert target.intensity == 6
        assert target.rationale[-1] == "Health: Recovery 75/100, Sleep 7h → Intensity 6/10"

    def test_intensity_never_leaves_range(self) -> None:
        hiit = item(1, "HIIT", intensity=10)
        target = suggest(hiit, report=health(recovery_score=10, sleep_hours=2, stress=9))

        assert 1 <= target.intensity <= 10


class TestHelpers:
    def test_is_lower_body(self) -> None:
        assert is_lower_body(item(1, "Powerlifting", title="Bench"))
        assert is_lower_body(item(1, "CrossFit", title="Front SQUAT complex"))
        assert not is_lower_body(item(1, "Strength", title="Pull-ups"))

    def test_streak_counts_most_recent_run(self) -> None:
        workouts = [item(1, "HIIT"), item(2, "HIIT"), item(3, "Cardio"), item(4, "HIIT")]
        assert find_streak(workouts, TODAY) == (2, "HIIT")
        assert find_streak([item(9, "HIIT")], TODAY) == (0, None)

    def test_least_recent_prefers_unused_in_order(self) -> None:
        workouts = [item(1, "CrossFit"), item(2, "HIIT")]
        assert find_least_recent_category(workouts, TODAY) == WorkoutCategory.STRENGTH

    def test_duration_rounding_and_bias(self) -> None:
        workouts = [item(2, duration=30), item(3, duration=31)]

        assert adjust_duration(workouts, TODAY, 6) == 31  # 30.5 rounds half up
        assert adjust_duration(workouts, TODAY, 9) == 30
        assert adjust_duration([item(1, duration=5)], TODAY, 6) == 15
        assert adjust_duration([item(1, duration=None)], TODAY, 6) == 35
        assert adjust_duration([item(1, duration=200)], TODAY, 3) == 90

    def test_default_duration_is_still_biased(self) -> None:
        assert adjust_duration([], TODAY, 6) == 35
        assert adjust_duration([], TODAY, 3) == 40
        assert adjust_duration([], TODAY, 9) == 30
        assert adjust_duration([item(10, duration=20)], TODAY, 2) == 40

    def test_duration_uses_three_most_recent(self) -> None:
        workouts = [
            item(0, duration=60, hour=6),
            item(1, duration=60),
            item(2, duration=60),
            item(3, duration=15),
        ]
        assert adjust_duration(workouts, TODAY, 6) == 60


class TestSuggestionService:
    async def test_load_context(self, async_session: AsyncSession) -> None:
        async_session.add_all(
            [
                make_workout("u1", 1, category="HIIT"),
                make_workout("u1", 40, category="Cardio"),
                make_workout("u2", 1, category="Strength"),
                make_report("u1", TODAY - timedelta(days=3), {"recoveryScore": 20}),
                make_report("u1", TODAY - timedelta(days=1), {"provider": {"recovery_score": 88}}),
                PersonalRecord(user_id="u1", movement="Deadlift", weight_kg=180, date=TODAY),
                PersonalRecord(
                    user_id="u1", movement="Snatch", weight_kg=80, date=date(2025, 1, 1)
                ),
            ]
        )
        await async_session.commit()

        context = await SuggestionService(async_session).load_context("u1", TODAY)

        assert [w.category for w in context.last_workouts] == ["HIIT"]
        assert context.health_report is not None
        assert context.health_report.provider.recovery_score == 88
        assert [pr.movement for pr in context.recent_prs] == ["Deadlift"]
        assert context.recent_prs[0].achieved_on == TODAY

    async def test_get_or_create_today_is_stable(self, async_session: AsyncSession) -> None:
        async_session.add(make_workout("u1", 1, category="Powerlifting"))
        await async_session.commit()
        service = SuggestionService(async_session)

        row, created = await service.get_or_create_today("u1", today=TODAY)
        again, created_again = await service.get_or_create_today("u1", today=TODAY)

        assert created is True
        assert created_again is False
        assert again.id == row.id
        assert row.source == SuggestionSource.ON_DEMAND.value
        assert row.request["category"] == "Cardio"
        assert row.rationale[0].startswith("Yesterday:")

    async def test_duplicate_insert_loses_quietly(self, async_session: AsyncSession) -> None:
        service = SuggestionService(async_session)
        target = SuggestionTarget(WorkoutCategory.CARDIO, 5, 30, ["x"])

        first = await service.insert("u1", TODAY, target, SuggestionSource.CRON)
        second = await service.insert("u1", TODAY, target, SuggestionSource.ON_DEMAND)

        assert first is not None
        assert second is None
        count = await async_session.scalar(select(func.count()).select_from(SuggestedWorkout))
        assert count == 1
        assert await service.count_for_day(TODAY) == 1

    async def test_start_suggestion_only_once(self, async_session: AsyncSession) -> None:
        service = SuggestionService(async_session)
        target = SuggestionTarget(WorkoutCategory.STRENGTH, 6, 45, [])
        await service.insert("u1", TODAY, target, SuggestionSource.CRON)

        row = await service.start_suggestion("u1", "workout-1", today=TODAY)
        assert row.workout_id == "workout-1"
        assert row.is_started

        with pytest.raises(SuggestionAlreadyStartedError):
            await service.start_suggestion("u1", "workout-2", today=TODAY)

        stored = await service.get_for_day("u1", TODAY)
        assert stored is not None
        assert stored.workout_id == "workout-1"

    async def test_start_without_suggestion(self, async_session: AsyncSession) -> None:
        with pytest.raises(SuggestionNotFoundError):
            await SuggestionService(async_session).start_suggestion("u1", "w", today=TODAY)


@pytest.fixture
async def file_session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Sessions on separate connections to one SQLite file, like concurrent workers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class TestConcurrentWriters:
    async def test_racing_inserts_leave_one_row(
        self, file_session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        target = SuggestionTarget(WorkoutCategory.CARDIO, 5, 30, ["x"])

        async def insert(source: SuggestionSource) -> SuggestedWorkout | None:
            async with file_session_factory() as session:
                return await SuggestionService(session).insert("u1", TODAY, target, source)

        results = await asyncio.gather(
            insert(SuggestionSource.CRON), insert(SuggestionSource.ON_DEMAND)
        )

        assert sum(row is not None for row in results) == 1
        async with file_session_factory() as session:
            assert await SuggestionService(session).count_for_day(TODAY) == 1

    async def test_racing_get_or_create_agree_on_one_suggestion(
        self, file_session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with file_session_factory() as session:
            session.add(make_workout("u1", 1, category="HIIT"))
            await session.commit()

        async def get_or_create() -> tuple[SuggestedWorkout, bool]:
            async with file_session_factory() as session:
                return await SuggestionService(session).get_or_create_today("u1", today=TODAY)

        (first, first_created), (second, second_created) = await asyncio.gather(
            get_or_create(), get_or_create()
        )

        assert first.id == second.id
        assert [first_created, second_created].count(True) == 1
        async with file_session_factory() as session:
            assert await SuggestionService(session).count_for_day(TODAY) == 1
