from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, serialize
from errors import ValidationError
from schemas import ActivityIn
from services import analytics

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


def _parse_date(value: Optional[str], label: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {label} date")
    # stored timestamps are naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@router.post("/event", status_code=status.HTTP_201_CREATED)
def log_event(
    payload: ActivityIn,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    current_user: Optional[Dict] = Depends(auth_utils.get_optional_user),
):
    if not payload.event_type:
        raise ValidationError("event_type is required")

    ip = analytics.client_ip(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None,
    )
    event = analytics.build_event(payload, current_user, ip, request.headers.get("user-agent"))
    activity = analytics.record_activity(db, event)

    if activity["meta"].get("enrichment") == "pending":
        background_tasks.add_task(analytics.enrich_activity, db, activity["_id"], ip)

    return serialize(activity)


@router.get("/events")
def get_events(
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    limit: int = 200,
    skip: int = 0,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    events = analytics.query_events(
        db,
        user_id=user_id,
        event_type=event_type,
        start=_parse_date(start, "start"),
        end=_parse_date(end, "end"),
        limit=min(max(limit, 1), 1000),
        skip=max(skip, 0),
    )
    return serialize(events)


@router.get("/summary")
def get_summary(db: Database = Depends(get_db), admin: Dict = Depends(auth_utils.get_admin_user)):
    return serialize(analytics.summary(db))


@router.get("/monthly")
def get_monthly_stats(db: Database = Depends(get_db), admin: Dict = Depends(auth_utils.get_admin_user)):
    return analytics.monthly_stats(db)


@router.get("/cart")
def get_cart_activity(
    guest_id: Optional[str] = None,
    user_id: Optional[str] = None,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    """Cart contents for one shopper, looked up by guest id or user id."""
    if user_id:
        query = {"user_id": user_id}
    elif guest_id:
        query = {"guest_id": guest_id}
    else:
        raise ValidationError("guest_id or user_id is required")
    return serialize(list(db.carts.find(query)))
