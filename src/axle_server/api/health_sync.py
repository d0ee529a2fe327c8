"""Health sync and report endpoints."""

from typing import Annotated, Any

from litestar import Router, get, post
from litestar.params import Parameter
from litestar.status_codes import HTTP_200_OK
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.schemas.metrics import MetricsEnvelope
from axle_server.services.health_sync import HealthSyncService


@post("/users/{user_id:str}/health/sync", status_code=HTTP_200_OK)
async def trigger_health_sync(
    user_id: str,
    session: AsyncSession,
    force: Annotated[bool, Parameter(query="force")] = False,
) -> dict[str, Any]:
    """Run today's health sync for a user now.

    Args:
        user_id: User identifier
        session: Database session (injected)
        force: Re-fetch even if today's report exists

    Returns:
        Sync outcome, provider used and per-provider errors
    """
    service = HealthSyncService(session)
    result = await service.sync_user(user_id, force=force)
    return {"user_id": user_id, **result.to_dict()}


@get("/users/{user_id:str}/health/reports", status_code=HTTP_200_OK)
async def list_health_reports(
    user_id: str,
    session: AsyncSession,
    days: Annotated[int, Parameter(query="days", ge=1, le=365)] = 30,
) -> list[dict[str, Any]]:
    """Health reports from the last ``days`` days, newest first.

    Metrics are returned in the normalized envelope layout regardless of
    how they were stored.
    """
    service = HealthSyncService(session)
    reports = await service.list_reports(user_id, days=days)
    return [
        {
            "id": report.id,
            "date": report.date.isoformat(),
            "metrics": MetricsEnvelope.normalize(report.metrics).to_storage(),
            "summary": report.summary,
            "suggestions": report.suggestions,
            "fatigue_score": report.fatigue_score,
        }
        for report in reports
    ]


health_sync_router = Router(
    path="/",
    route_handlers=[trigger_health_sync, list_health_reports],
)
