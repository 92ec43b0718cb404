from typing import Optional

from .models import NotificationRecord, SubscriptionStatus

STATUS_LABELS = {
    "en": {
        "pending": "Pending",
        "confirmed": "Confirmed",
        "preparing": "Preparing",
        "ready": "Ready",
        "delivered": "Delivered",
        "cancelled": "Cancelled",
    },
    "ar": {
        "pending": "في الانتظار",
        "confirmed": "مؤكد",
        "preparing": "قيد التحضير",
        "ready": "جاهز",
        "delivered": "تم التسليم",
        "cancelled": "ملغي",
    },
}

TEXTS = {
    "en": {
        "new_order_title": "New order!",
        "new_order_body": "New order from {customer} - order #{number}",
        "status_title": "Order status updated",
        "status_body": "Order #{number} is now {status}",
        "block_title": "Access unavailable",
        "block_inactive": "Subscription is inactive or expired",
        "block_paused": "Subscription is currently paused",
        "block_unavailable": "Subscription is unavailable",
        "block_hint": "Please renew your subscription to keep using the dashboard.",
    },
    "ar": {
        "new_order_title": "طلب جديد!",
        "new_order_body": "طلب جديد من {customer} - رقم الطلب: {number}",
        "status_title": "تحديث حالة الطلب",
        "status_body": "تم تحديث حالة الطلب {number} إلى {status}",
        "block_title": "الوصول غير متاح",
        "block_inactive": "الاشتراك غير نشط أو منتهي الصلاحية",
        "block_paused": "الاشتراك موقوف حالياً",
        "block_unavailable": "الاشتراك غير متاح",
        "block_hint": "يرجى تجديد الاشتراك للاستمرار في استخدام النظام",
    },
}


def text(key: str, locale: str = "en") -> str:
    return TEXTS.get(locale, TEXTS["en"]).get(key, TEXTS["en"][key])


def status_label(status: str, locale: str = "en") -> str:
    labels = STATUS_LABELS.get(locale, STATUS_LABELS["en"])
    return labels.get(status, status)


def new_order_message(record: NotificationRecord, locale: str = "en"):
    body = text("new_order_body", locale).format(
        customer=record.customer_name or "-",
        number=record.order_number or record.id,
    )
    return text("new_order_title", locale), body


def status_change_message(record: NotificationRecord, locale: str = "en"):
    body = text("status_body", locale).format(
        number=record.order_number or record.id,
        status=status_label(record.status, locale),
    )
    return text("status_title", locale), body


def block_reason(status: Optional[SubscriptionStatus], locale: str = "en") -> str:
    if status is None or status in (SubscriptionStatus.EXPIRED, SubscriptionStatus.ACTIVE):
        # ACTIVE but blocked means the end date has passed or is unreadable
        return text("block_inactive", locale)
    if status == SubscriptionStatus.PAUSED:
        return text("block_paused", locale)
    return text("block_unavailable", locale)
