"""Daily suggestion endpoints."""

from typing import Any

from litestar import Router, get, post
from litestar.exceptions import ClientException, NotFoundException
from litestar.status_codes import HTTP_200_OK, HTTP_409_CONFLICT
from sqlalchemy.ext.asyncio import AsyncSession

from axle_server.models.suggested_workout import SuggestedWorkout
from axle_server.schemas.suggestion import StartSuggestionRequest, SuggestionResponse
from axle_server.services.suggestion import (
    SuggestionAlreadyStartedError,
    SuggestionNotFoundError,
    SuggestionService,
)


def _serialize(row: SuggestedWorkout) -> dict[str, Any]:
    return SuggestionResponse.model_validate(row).model_dump(mode="json")


@get("/users/{user_id:str}/suggestions/today", status_code=HTTP_200_OK)
async def get_today_suggestion(
    user_id: str,
    session: AsyncSession,
) -> dict[str, Any]:
    """Get today's suggestion, computing it if the daily job hasn't yet.

    The on-demand path skips the health sync and uses whatever health
    report is already stored.
    """
    service = SuggestionService(session)
    row, created = await service.get_or_create_today(user_id)
    return {"suggestion": _serialize(row), "created": created}


@post("/users/{user_id:str}/suggestions/today/start", status_code=HTTP_200_OK)
async def start_today_suggestion(
    user_id: str,
    data: StartSuggestionRequest,
    session: AsyncSession,
) -> dict[str, Any]:
    """Attach the workout the user started from today's suggestion.

    Example:
        POST /api/v1/users/u1/suggestions/today/start
        {"workout_id": "8f0c..."}
    """
    service = SuggestionService(session)
    try:
        row = await service.start_suggestion(user_id, data.workout_id)
    except SuggestionNotFoundError as e:
        raise NotFoundException(str(e)) from e
    except SuggestionAlreadyStartedError as e:
        raise ClientException(str(e), status_code=HTTP_409_CONFLICT) from e

    return {"suggestion": _serialize(row)}


suggestions_router = Router(
    path="/",
    route_handlers=[get_today_suggestion, start_today_suggestion],
)
