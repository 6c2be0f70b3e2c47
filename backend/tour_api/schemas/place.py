"""
Pydantic schemas for the place catalog.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field

PlaceCategory = Literal[
    "historic", "restaurant", "hotel", "mosque", "church",
    "market", "museum", "park", "cafe",
]


class PlaceCreate(BaseModel):
    name_ar: str = Field(..., min_length=1, max_length=200)
    name_en: str = Field(..., min_length=1, max_length=200)
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    category: PlaceCategory
    address_ar: Optional[str] = Field(None, max_length=500)
    address_en: Optional[str] = Field(None, max_length=500)
    latitude: Optional[Decimal] = Field(None, ge=-90, le=90)
    longitude: Optional[Decimal] = Field(None, ge=-180, le=180)
    opening_hours: Optional[str] = Field(None, max_length=500)
    entry_fee: Optional[Decimal] = Field(None, ge=0)
    contact_phone: Optional[str] = Field(None, max_length=20)
    contact_email: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=500)
    featured_image: Optional[str] = Field(None, max_length=500)


class PlaceResponse(BaseModel):
    id: int
    name_ar: str
    name_en: str
    description_ar: Optional[str]
    description_en: Optional[str]
    category: str
    address_ar: Optional[str]
    address_en: Optional[str]
    latitude: Optional[Decimal]
    longitude: Optional[Decimal]
    opening_hours: Optional[str]
    entry_fee: Optional[Decimal]
    contact_phone: Optional[str]
    contact_email: Optional[str]
    website: Optional[str]
    featured_image: Optional[str]
    average_rating: Decimal
    total_reviews: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PlaceSummary(BaseModel):
    id: int
    name_ar: str
    name_en: str
    category: str
    address_ar: Optional[str] = None
    address_en: Optional[str] = None
    featured_image: Optional[str] = None

    model_config = {"from_attributes": True}
