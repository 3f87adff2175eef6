from typing import Dict

from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, is_object_id, serialize, to_object_id, utcnow
from errors import NotFoundError, ValidationError
from schemas import SLIDE_SIZES, SlideCreate, SlideUpdate
from services.catalog import HEX_COLOR_RE

router = APIRouter(prefix="/api/slides", tags=["Slides"])

DEFAULTS = {"link": "/products", "bgColor": "#ffffff", "size": "medium"}


def _get_slide(db: Database, slide_id: str) -> Dict:
    slide = None
    if is_object_id(slide_id):
        slide = db.slides.find_one({"_id": to_object_id(slide_id)})
    if not slide:
        raise NotFoundError("Slide not found")
    return slide


def _check_fields(fields: Dict) -> None:
    if "image" in fields and not fields["image"]:
        raise ValidationError("Slide image is required")
    if "size" in fields and fields["size"] not in SLIDE_SIZES:
        raise ValidationError("Slide size must be medium or large")
    if "bgColor" in fields and not HEX_COLOR_RE.match(fields["bgColor"] or ""):
        raise ValidationError("Invalid background color format. Use a hex code (e.g., #FFFFFF)")


@router.get("/")
def get_slides(db: Database = Depends(get_db)):
    return serialize(list(db.slides.find().sort("createdAt", 1)))


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_slide(
    payload: SlideCreate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    fields = {key: value for key, value in payload.model_dump().items() if value not in (None, "")}
    slide = {**DEFAULTS, **fields}
    _check_fields({"image": None, **slide})

    slide["createdAt"] = utcnow()
    slide["_id"] = db.slides.insert_one(slide).inserted_id
    return serialize(slide)


@router.put("/{slide_id}")
def update_slide(
    slide_id: str,
    payload: SlideUpdate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    slide = _get_slide(db, slide_id)
    changes = payload.model_dump(exclude_unset=True)
    _check_fields(changes)

    if changes:
        db.slides.update_one({"_id": slide["_id"]}, {"$set": changes})
        slide.update(changes)
    return serialize(slide)


@router.delete("/{slide_id}")
def delete_slide(
    slide_id: str,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    slide = _get_slide(db, slide_id)
    db.slides.delete_one({"_id": slide["_id"]})
    return {"message": "Slide deleted successfully"}
