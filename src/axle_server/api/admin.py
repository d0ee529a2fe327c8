"""Admin endpoints for the daily suggestion job."""

from datetime import UTC, datetime
from typing import Any

from litestar import Router, get, post
from litestar.datastructures import State
from litestar.exceptions import InternalServerException, ServiceUnavailableException
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.core.auth import api_key_guard
from axle_server.services.daily_job import get_recent_runs
from axle_server.services.scheduler import SuggestionScheduler
from axle_server.services.suggestion import SuggestionService


def _scheduler(state: State) -> SuggestionScheduler:
    scheduler = getattr(state, "scheduler", None)
    if scheduler is None:
        raise ServiceUnavailableException("Scheduler not initialized")
    return scheduler


@post("/admin/jobs/daily-suggestions/run", status_code=HTTP_200_OK)
async def run_daily_suggestions(state: State) -> dict[str, Any]:
    """Run the daily suggestion job now.

    Returns:
        ``{processed, created, skipped, errors, duration_ms}``

    Raises:
        InternalServerException: If the job failed as a whole
    """
    scheduler = _scheduler(state)
    try:
        return await scheduler.trigger_manual_run()
    except Exception as e:
        raise InternalServerException(f"Daily suggestion job failed: {e}") from e


@get("/admin/jobs/daily-suggestions/status", status_code=HTTP_200_OK)
async def daily_suggestions_status(state: State, session: AsyncSession) -> dict[str, Any]:
    """Scheduler status, recent runs and today's suggestion count."""
    scheduler = _scheduler(state)
    runs = await get_recent_runs(session, limit=10)
    today = datetime.now(UTC).date()
    return {
        "scheduler": scheduler.get_status(),
        "recent_runs": [run.to_dict() for run in runs],
        "today": today.isoformat(),
        "suggestions_today": await SuggestionService(session).count_for_day(today),
    }


admin_router = Router(
    path="/",
    guards=[api_key_guard],
    route_handlers=[run_daily_suggestions, daily_suggestions_status],
)
