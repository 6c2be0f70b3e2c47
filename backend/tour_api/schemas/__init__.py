from tour_api.schemas.common import ApiResponse, ErrorResponse, Pagination, PaginatedResponse
from tour_api.schemas.user import UserCreate, UserResponse, UserLogin, Token
from tour_api.schemas.place import PlaceCreate, PlaceResponse, PlaceSummary
from tour_api.schemas.booking import (
    BookingCreate, BookingUpdate, BookingCancel, BookingConfirm,
    BookingResponse, BookingWithPlace, BookingStats, AdminBookingListResponse,
)
from tour_api.schemas.notification import NotificationResponse, NotificationListResponse

__all__ = [
    "ApiResponse", "ErrorResponse", "Pagination", "PaginatedResponse",
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "PlaceCreate", "PlaceResponse", "PlaceSummary",
    "BookingCreate", "BookingUpdate", "BookingCancel", "BookingConfirm",
    "BookingResponse", "BookingWithPlace", "BookingStats", "AdminBookingListResponse",
    "NotificationResponse", "NotificationListResponse",
]
