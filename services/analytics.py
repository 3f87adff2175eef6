import ipaddress
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx
from bson import ObjectId
from pymongo.database import Database

from config import settings
from database import is_object_id, utcnow

logger = logging.getLogger(__name__)

TRACKED_DAILY_EVENTS = ("page_view", "add_to_cart", "order_placed")


# --- Helper Functions ---

def client_ip(forwarded_for: Optional[str], peer: Optional[str]) -> Optional[str]:
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    return peer or None


def is_public_ip(ip: Optional[str]) -> bool:
    if not ip:
        return False
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def classify_device(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if any(marker in ua for marker in ("bot", "crawler", "spider")):
        return "bot"
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    if any(marker in ua for marker in ("mobi", "iphone", "android")):
        return "mobile"
    return "desktop"


def record_activity(db: Database, activity: Dict[str, Any]) -> Dict[str, Any]:
    doc = {
        "user_id": None,
        "guest_id": None,
        "user_display": None,
        "session_id": None,
        "url": None,
        "element": None,
        "data": {},
        "duration_ms": None,
        "meta": {},
        **activity,
        "createdAt": utcnow(),
    }
    doc["_id"] = db.activities.insert_one(doc).inserted_id
    return doc


def build_event(payload, user: Optional[Dict], ip: Optional[str], user_agent: Optional[str]) -> Dict[str, Any]:
    user_id = str(user["_id"]) if user else payload.user_id
    meta = dict(payload.meta or {})
    if ip:
        meta["ip"] = ip
    if user_agent:
        meta["user_agent"] = user_agent[:200]
        meta["device"] = classify_device(user_agent)
    meta["enrichment"] = "pending" if is_public_ip(ip) else "skipped"
    return {
        "user_id": user_id if is_object_id(user_id) else None,
        "guest_id": payload.guest_id,
        "user_display": payload.user_display,
        "session_id": payload.session_id,
        "event_type": payload.event_type,
        "url": payload.url or payload.path,
        "element": payload.element,
        "data": payload.data or {},
        "duration_ms": payload.duration_ms,
        "meta": meta,
    }


# --- Geo enrichment (runs after the response has been sent) ---

async def lookup_location(ip: str) -> Dict[str, Any]:
    async with httpx.AsyncClient(timeout=settings.GEOIP_TIMEOUT) as client:
        r = await client.get(settings.GEOIP_URL.format(ip=ip))
        r.raise_for_status()
        info = r.json()
    if info.get("error"):
        raise ValueError(info.get("reason") or "geo lookup refused")
    return {
        "ip": ip,
        "city": info.get("city"),
        "region": info.get("region"),
        "country": info.get("country_name") or info.get("country"),
        "latitude": info.get("latitude") or info.get("lat"),
        "longitude": info.get("longitude") or info.get("lon"),
        "org": info.get("org"),
    }


async def enrich_activity(db: Database, activity_id: ObjectId, ip: str) -> bool:
    """
    Best-effort: retried a few times, and any failure only ends up in the log
    and in meta.enrichment. Never raises.
    """
    for attempt in range(1, settings.ENRICHMENT_ATTEMPTS + 1):
        try:
            location = await lookup_location(ip)
            db.activities.update_one(
                {"_id": activity_id},
                {"$set": {"meta.location": location, "meta.enrichment": "done"}},
            )
            return True
        except Exception as e:
            logger.warning("Geo lookup for activity %s failed (attempt %d): %s", activity_id, attempt, e)
    try:
        db.activities.update_one({"_id": activity_id}, {"$set": {"meta.enrichment": "failed"}})
    except Exception as e:
        logger.warning("Could not mark activity %s as failed: %s", activity_id, e)
    return False


async def replay_pending(db: Database, limit: int = 500) -> int:
    """Re-runs enrichment left pending by a previous process."""
    pending = list(db.activities.find({"meta.enrichment": "pending"}, {"meta.ip": 1}).limit(limit))
    for doc in pending:
        await enrich_activity(db, doc["_id"], doc.get("meta", {}).get("ip"))
    if pending:
        logger.info("Replayed enrichment for %d pending activities", len(pending))
    return len(pending)


# --- Reporting ---

def query_events(
    db: Database,
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
    skip: int = 0,
) -> List[Dict]:
    query: Dict[str, Any] = {}
    if is_object_id(user_id):
        query["user_id"] = user_id
    if event_type:
        query["event_type"] = event_type
    if start or end:
        query["createdAt"] = {}
        if start:
            query["createdAt"]["$gte"] = start
        if end:
            query["createdAt"]["$lte"] = end
    return list(db.activities.find(query).sort("createdAt", -1).skip(skip).limit(limit))


def summary(db: Database) -> Dict[str, Any]:
    counts = list(db.activities.aggregate([
        {"$group": {"_id": "$event_type", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": 50},
    ]))
    unique_users = [u for u in db.activities.distinct("user_id") if u]
    sessions = list(db.activities.aggregate([
        {"$match": {"event_type": "session_end", "duration_ms": {"$ne": None}}},
        {"$group": {"_id": None, "avgDuration": {"$avg": "$duration_ms"}, "count": {"$sum": 1}}},
    ]))
    session = sessions[0] if sessions else {}
    return {
        "countsByType": counts,
        "uniqueUsers": len(unique_users),
        "avgSessionDurationMs": session.get("avgDuration") or 0,
        "sessionSamples": session.get("count", 0),
    }


def monthly_stats(db: Database, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Per-day counts of the tracked events plus unique page-view sessions, last 30 days."""
    now = now or utcnow()
    start = now - timedelta(days=30)
    by_day: Dict[str, Dict[str, int]] = defaultdict(lambda: {e: 0 for e in TRACKED_DAILY_EVENTS})
    sessions: Dict[str, set] = defaultdict(set)

    cursor = db.activities.find(
        {"createdAt": {"$gte": start}},
        {"event_type": 1, "createdAt": 1, "session_id": 1},
    )
    for doc in cursor:
        day = doc["createdAt"].strftime("%Y-%m-%d")
        event = doc.get("event_type")
        if event in TRACKED_DAILY_EVENTS:
            by_day[day][event] += 1
        if event == "page_view" and doc.get("session_id"):
            sessions[day].add(doc["session_id"])

    result = {}
    for day, counts in by_day.items():
        result[day] = {**counts, "visitors": len(sessions[day])}

    totals = {e: sum(v[e] for v in result.values()) for e in TRACKED_DAILY_EVENTS}
    totals["visitors"] = sum(v["visitors"] for v in result.values())
    return {"totals": totals, "byDay": result}
