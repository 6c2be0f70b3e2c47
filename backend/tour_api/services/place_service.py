"""
Place catalog: the things that can be booked.
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from tour_api.core.exceptions import NotFoundError
from tour_api.core.logging import get_logger
from tour_api.models.place import Place
from tour_api.schemas.place import PlaceCreate

logger = get_logger(__name__)


async def create_place(db: AsyncSession, data: PlaceCreate) -> Place:
    place = Place(**data.model_dump(), average_rating=0, total_reviews=0, is_active=True)
    db.add(place)
    await db.flush()
    await db.refresh(place)

    logger.info("place_created", place_id=place.id, category=place.category)
    return place


async def get_place(db: AsyncSession, place_id: int) -> Place:
    result = await db.execute(
        select(Place).where(Place.id == place_id, Place.is_active.is_(True))
    )
    place = result.scalar_one_or_none()
    if place is None:
        raise NotFoundError("place_not_found")
    return place


async def list_places(
    db: AsyncSession,
    category: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Place], int]:
    """Active places, best rated first. Uses ix_places_category when filtering."""
    query = select(Place).where(Place.is_active.is_(True))
    if category:
        query = query.where(Place.category == category)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Place.average_rating.desc(), Place.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total
