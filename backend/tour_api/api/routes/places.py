"""
Place catalog endpoints. Listing is public and cached in Redis.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.db.session import get_db
from tour_api.models.user import User
from tour_api.schemas.common import ApiResponse, PaginatedResponse, Pagination
from tour_api.schemas.place import PlaceCategory, PlaceCreate, PlaceResponse
from tour_api.services import place_service
from tour_api.services.cache_service import get_cached_places, invalidate_place_cache, set_cached_places
from tour_api.core.messages import get_language, translate
from tour_api.core.security import require_admin

router = APIRouter(prefix="/places", tags=["Places"])


@router.get("", response_model=PaginatedResponse[PlaceResponse])
async def list_places(
    category: Optional[PlaceCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    List active places.

    Cache-aside: check Redis, fall back to PostgreSQL and populate the cache.
    """
    cached = await get_cached_places(page, limit, category)
    if cached:
        return cached

    places, total = await place_service.list_places(db, category, page, limit)
    response = PaginatedResponse[PlaceResponse](
        data=[PlaceResponse.model_validate(p) for p in places],
        pagination=Pagination.build(page, limit, total),
    )
    await set_cached_places(page, limit, category, response.model_dump(mode="json"))
    return response


@router.get("/{place_id}", response_model=ApiResponse[PlaceResponse])
async def get_place(place_id: int, db: AsyncSession = Depends(get_db)):
    place = await place_service.get_place(db, place_id)
    return ApiResponse(data=PlaceResponse.model_validate(place))


@router.post("", response_model=ApiResponse[PlaceResponse], status_code=status.HTTP_201_CREATED)
async def create_place(
    data: PlaceCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    lang: str = Depends(get_language),
):
    place = await place_service.create_place(db, data)
    await db.commit()
    # The new row must be visible to other sessions before the cache is dropped.
    await invalidate_place_cache()
    return ApiResponse(
        message=translate("place_created", lang),
        data=PlaceResponse.model_validate(place),
    )
