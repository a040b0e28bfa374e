import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends

from database import get_db, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/delivery", tags=["delivery"])


def _aware(value: datetime):
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _delivered_between(doc: dict, start: datetime, end: datetime) -> bool:
    """Delivery date in [start, end), falling back to the last update for older records."""
    when = _aware(doc.get("delivery_date") or doc.get("updated_at"))
    return when is not None and start <= when < end


def _month_bounds(now: datetime):
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


@router.get("/overview")
def delivery_overview(db=Depends(get_db)):
    now = utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    month_start, next_month = _month_bounds(now)

    ready = db["order"].count_documents({"status": "ready_for_delivery", "delivery_status": "not_assigned"})
    ready += db["customorder"].count_documents({"delivery_status": "ready_for_delivery"})
    on_delivery = db["order"].count_documents({"delivery_status": {"$in": ["picked_up", "in_transit"]}})
    on_delivery += db["customorder"].count_documents({"delivery_status": "picked_up"})

    completed_today = 0
    revenue = 0
    for collection in ("order", "customorder"):
        projection = {"delivery_date": 1, "updated_at": 1, "delivery_fee": 1, "payment_released": 1}
        for doc in db[collection].find({"delivery_status": "delivered"}, projection):
            if _delivered_between(doc, today, tomorrow):
                completed_today += 1
            if doc.get("payment_released") and _delivered_between(doc, month_start, next_month):
                revenue += doc.get("delivery_fee") or 0

    data = {
        "ready_to_delivery": ready,
        "on_the_delivery": on_delivery,
        "completed_delivery": completed_today,
        "total_revenue": round(revenue),
    }
    logger.debug("Delivery overview: %s", data)
    return {"success": True, "data": data, "timestamp": now.isoformat()}
