"""
Place catalog model.

`entry_fee` is nullable: booking pricing treats a missing fee and a zero fee
the same way (see tour_api.services.booking_rules.compute_price).
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, Index, CheckConstraint
from sqlalchemy.orm import relationship

from tour_api.db.base import Base, TimestampMixin

PLACE_CATEGORIES = (
    "historic", "restaurant", "hotel", "mosque", "church",
    "market", "museum", "park", "cafe",
)


class Place(Base, TimestampMixin):
    __tablename__ = "places"

    id = Column(Integer, primary_key=True, index=True)
    name_ar = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=False)
    description_ar = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    category = Column(String(50), nullable=False)
    address_ar = Column(String(500), nullable=True)
    address_en = Column(String(500), nullable=True)
    latitude = Column(Numeric(10, 8), nullable=True)
    longitude = Column(Numeric(11, 8), nullable=True)
    opening_hours = Column(String(500), nullable=True)
    entry_fee = Column(Numeric(10, 2), nullable=True, default=0)
    contact_phone = Column(String(20), nullable=True)
    contact_email = Column(String(100), nullable=True)
    website = Column(String(500), nullable=True)
    featured_image = Column(String(500), nullable=True)
    average_rating = Column(Numeric(3, 2), nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    bookings = relationship("Booking", back_populates="place", lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "category IN ('historic', 'restaurant', 'hotel', 'mosque', 'church', "
            "'market', 'museum', 'park', 'cafe')",
            name="check_place_category",
        ),
        CheckConstraint("average_rating >= 0 AND average_rating <= 5", name="check_place_rating_range"),
        Index("ix_places_category", "category"),
        Index("ix_places_lat_lng", "latitude", "longitude"),
    )

    def __repr__(self) -> str:
        return f"<Place(id={self.id}, name={self.name_en}, category={self.category})>"
