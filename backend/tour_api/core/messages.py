"""
User-facing message catalog (English / Arabic).

Every response message goes through `translate`, keyed by a stable message key.
Unknown keys fall back to the key itself so a missing entry never breaks a
response.
"""

from typing import Optional

from fastapi import Header

from tour_api.core.config import get_settings

SUPPORTED_LANGUAGES = ("en", "ar")

MESSAGES: dict[str, dict[str, str]] = {
    # Generic
    "internal_error": {
        "en": "Something went wrong, please try again later",
        "ar": "حدث خطأ ما، يرجى المحاولة لاحقاً",
    },
    "validation_failed": {
        "en": "The request contains invalid or missing fields",
        "ar": "الطلب يحتوي على حقول غير صالحة أو مفقودة",
    },
    "not_authenticated": {
        "en": "Authentication required",
        "ar": "يجب تسجيل الدخول",
    },
    "forbidden": {"en": "Access denied", "ar": "غير مصرح"},
    "not_found": {"en": "Resource not found", "ar": "المورد غير موجود"},
    "route_not_found": {"en": "Route not found", "ar": "المسار غير موجود"},
    "invalid_state": {
        "en": "This operation is not allowed in the current state",
        "ar": "العملية غير مسموحة في الحالة الحالية",
    },
    "conflict": {"en": "Conflicting update", "ar": "تعارض في التحديث"},
    "external_service_error": {
        "en": "An external service failed to respond",
        "ar": "فشلت خدمة خارجية في الاستجابة",
    },
    # Auth
    "email_taken": {
        "en": "Email already registered",
        "ar": "البريد الإلكتروني مسجل مسبقاً",
    },
    "invalid_credentials": {
        "en": "Invalid email or password",
        "ar": "البريد الإلكتروني أو كلمة المرور غير صحيحة",
    },
    "invalid_token": {
        "en": "Invalid or expired token",
        "ar": "رمز الدخول غير صالح أو منتهي الصلاحية",
    },
    "account_inactive": {"en": "Account is deactivated", "ar": "الحساب معطل"},
    "admin_required": {"en": "Admin access required", "ar": "يتطلب صلاحيات المسؤول"},
    "user_registered": {"en": "Account created successfully", "ar": "تم إنشاء الحساب بنجاح"},
    "login_success": {"en": "Logged in successfully", "ar": "تم تسجيل الدخول بنجاح"},
    # Places
    "place_not_found": {"en": "Place not found", "ar": "المكان غير موجود"},
    "place_created": {"en": "Place created successfully", "ar": "تم إنشاء المكان بنجاح"},
    # Bookings
    "booking_required_fields": {
        "en": "Place, service type and booking date are required",
        "ar": "المكان ونوع الخدمة وتاريخ الحجز مطلوبون",
    },
    "booking_invalid_service_type": {
        "en": "Unknown service type: {service_type}",
        "ar": "نوع الخدمة غير معروف: {service_type}",
    },
    "booking_date_in_past": {
        "en": "Cannot book a date in the past",
        "ar": "لا يمكن الحجز في تاريخ ماضي",
    },
    "booking_not_found": {"en": "Booking not found", "ar": "الحجز غير موجود"},
    "booking_number_collision": {
        "en": "Could not allocate a booking number, please try again",
        "ar": "تعذر إنشاء رقم الحجز، يرجى المحاولة مرة أخرى",
    },
    "booking_invalid_transition": {
        "en": "A {status} booking cannot be {event}",
        "ar": "لا يمكن تنفيذ العملية ({event}) على حجز بحالة {status}",
    },
    "booking_update_window": {
        "en": "Cannot modify a booking less than {hours} hours before its date",
        "ar": "لا يمكن تعديل الحجز قبل أقل من {hours} ساعة من الموعد",
    },
    "booking_cancel_window": {
        "en": "Cannot cancel within {hours} hours of the booking date",
        "ar": "لا يمكن إلغاء الحجز قبل أقل من {hours} ساعة من الموعد",
    },
    "booking_complete_too_early": {
        "en": "Cannot complete a booking before its date",
        "ar": "لا يمكن إتمام الحجز قبل تاريخه",
    },
    "booking_modified_concurrently": {
        "en": "The booking was changed by another request, reload it and try again",
        "ar": "تم تعديل الحجز من طلب آخر، يرجى إعادة التحميل والمحاولة",
    },
    "booking_created": {"en": "Booking created successfully", "ar": "تم إنشاء الحجز بنجاح"},
    "booking_updated": {"en": "Booking updated successfully", "ar": "تم تحديث الحجز بنجاح"},
    "booking_cancelled": {"en": "Booking cancelled successfully", "ar": "تم إلغاء الحجز بنجاح"},
    "booking_confirmed": {"en": "Booking confirmed successfully", "ar": "تم تأكيد الحجز بنجاح"},
    "booking_completed": {"en": "Booking completed successfully", "ar": "تم إتمام الحجز بنجاح"},
    # Payments
    "payment_service_unavailable": {
        "en": "Payment service is currently unavailable",
        "ar": "خدمة الدفع غير متوفرة حالياً",
    },
    "payment_provider_error": {
        "en": "The payment provider rejected the request",
        "ar": "رفض مزود الدفع الطلب",
    },
    "booking_access_denied": {
        "en": "You are not allowed to access this booking",
        "ar": "غير مصرح بالوصول لهذا الحجز",
    },
    "booking_not_payable": {
        "en": "This booking cannot be paid for",
        "ar": "الحجز غير قابل للدفع",
    },
    "unsupported_currency": {
        "en": "Unsupported currency: {currency}",
        "ar": "العملة غير مدعومة: {currency}",
    },
    "payment_already_completed": {
        "en": "The payment cannot be cancelled after it has completed",
        "ar": "لا يمكن إلغاء الدفع بعد اكتماله",
    },
    "payment_cancelled": {"en": "Payment cancelled successfully", "ar": "تم إلغاء الدفع بنجاح"},
    "webhook_not_configured": {
        "en": "Webhook configuration error",
        "ar": "خطأ في إعدادات الـ webhook",
    },
    "invalid_webhook_signature": {
        "en": "Webhook signature verification failed",
        "ar": "فشل التحقق من توقيع الـ webhook",
    },
    "invalid_webhook_payload": {
        "en": "Webhook payload is not valid JSON",
        "ar": "محتوى الـ webhook غير صالح",
    },
    # Notifications
    "notification_not_found": {"en": "Notification not found", "ar": "الإشعار غير موجود"},
    "notifications_marked_read": {
        "en": "All notifications marked as read",
        "ar": "تم تحديد جميع الإشعارات كمقروءة",
    },
}


def resolve_language(accept_language: Optional[str]) -> str:
    """Pick the first supported language from an Accept-Language header."""
    if accept_language:
        for part in accept_language.split(","):
            code = part.split(";")[0].strip().lower()[:2]
            if code in SUPPORTED_LANGUAGES:
                return code
    return get_settings().DEFAULT_LANGUAGE


def translate(key: str, lang: Optional[str] = None, **params) -> str:
    entry = MESSAGES.get(key)
    if entry is None:
        return key
    lang = lang if lang in SUPPORTED_LANGUAGES else get_settings().DEFAULT_LANGUAGE
    template = entry.get(lang) or entry["en"]
    try:
        return template.format(**params)
    except (KeyError, IndexError):
        return template


async def get_language(accept_language: Optional[str] = Header(None)) -> str:
    """FastAPI dependency returning the caller's preferred language."""
    return resolve_language(accept_language)
