from tour_api.models.user import User
from tour_api.models.place import Place
from tour_api.models.booking import Booking, BookingStatus, PaymentStatus, ServiceType
from tour_api.models.notification import Notification
from tour_api.models.payment_event import PaymentEvent

__all__ = [
    "User", "Place", "Booking", "BookingStatus", "PaymentStatus", "ServiceType",
    "Notification", "PaymentEvent",
]
