from __future__ import annotations

from fastapi import APIRouter, Request

from property_weather_search.api.schemas import (
    SearchResponse,
    Suggestion,
    SuggestionsResponse,
    search_response,
)
from property_weather_search.search.filters import available_filters, parse_filters


router = APIRouter(tags=["search"])


@router.get("/get-properties", response_model=SearchResponse)
async def get_properties(request: Request):
    # Validation runs before any snapshot or cache access.
    filters = parse_filters(request.query_params)
    services = request.app.state.services
    result = await services.engine.search(filters)
    return search_response(
        result,
        {"applied": filters.to_dict(), "available": available_filters()},
    )


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(request: Request, q: str = ""):
    services = request.app.state.services
    rows = await services.engine.suggest(q)
    return SuggestionsResponse(data=[Suggestion(**row) for row in rows])
