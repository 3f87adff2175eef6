import logging
from typing import Dict

from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, is_object_id, serialize, to_object_id, utcnow
from errors import InternalError, NotFoundError, ValidationError
from schemas import CampaignCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["Campaigns"])


def _get_campaign(db: Database, campaign_id: str) -> Dict:
    campaign = None
    if is_object_id(campaign_id):
        campaign = db.campaigns.find_one({"_id": to_object_id(campaign_id)})
    if not campaign:
        raise NotFoundError("Campaign not found")
    return campaign


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: CampaignCreate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    if not payload.subject or not payload.body:
        raise ValidationError("Subject and body are required")

    campaign = {
        "subject": payload.subject,
        "body": payload.body,
        "sentAt": None,
        "recipientCount": 0,
        "createdAt": utcnow(),
    }
    campaign["_id"] = db.campaigns.insert_one(campaign).inserted_id
    return serialize(campaign)


@router.get("/")
def get_campaigns(db: Database = Depends(get_db), admin: Dict = Depends(auth_utils.get_admin_user)):
    return serialize(list(db.campaigns.find().sort("createdAt", -1)))


@router.post("/{campaign_id}/send")
def send_campaign(
    campaign_id: str,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    """
    Mails the campaign to every registered user in a single BCC message.
    A campaign can only be sent once.
    """
    campaign = _get_campaign(db, campaign_id)
    if campaign.get("sentAt"):
        raise ValidationError("Campaign already sent")

    recipients = [u["email"] for u in db.users.find({}, {"email": 1}) if u.get("email")]
    if not recipients:
        raise ValidationError("No users to send email to")

    if not auth_utils.send_email(recipients, campaign["subject"], campaign["body"], bcc=True):
        raise InternalError("Failed to send campaign")

    changes = {"sentAt": utcnow(), "recipientCount": len(recipients)}
    db.campaigns.update_one({"_id": campaign["_id"]}, {"$set": changes})
    campaign.update(changes)
    logger.info("Campaign %s sent to %d recipients", campaign["_id"], len(recipients))
    return serialize(campaign)


@router.delete("/{campaign_id}")
def delete_campaign(
    campaign_id: str,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    campaign = _get_campaign(db, campaign_id)
    db.campaigns.delete_one({"_id": campaign["_id"]})
    return {"message": "Campaign deleted successfully"}
