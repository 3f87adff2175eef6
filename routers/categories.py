from typing import Dict

from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, is_object_id, serialize, to_object_id, utcnow
from errors import ConflictError, NotFoundError, ValidationError
from schemas import CategoryCreate

router = APIRouter(prefix="/api/categories", tags=["Categories"])


def _get_category(db: Database, category_id: str) -> Dict:
    if not is_object_id(category_id):
        raise ValidationError("Invalid category ID")
    category = db.categories.find_one({"_id": to_object_id(category_id)})
    if not category:
        raise NotFoundError("Category not found")
    return category


def _with_parent(db: Database, category: Dict) -> Dict:
    parent_id = category.get("parent_category")
    if parent_id:
        category["parent_category"] = db.categories.find_one({"_id": to_object_id(parent_id)}) or parent_id
    return category


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    if not payload.name:
        raise ValidationError("Category name is required")
    if payload.parent_category:
        _get_category(db, payload.parent_category)

    now = utcnow()
    category = {
        "name": payload.name,
        "parent_category": payload.parent_category or None,
        "createdAt": now,
        "updatedAt": now,
    }
    category["_id"] = db.categories.insert_one(category).inserted_id
    return serialize(category)


@router.get("/")
def get_categories(db: Database = Depends(get_db)):
    return serialize([_with_parent(db, c) for c in db.categories.find()])


@router.get("/{category_id}")
def get_category_by_id(category_id: str, db: Database = Depends(get_db)):
    return serialize(_with_parent(db, _get_category(db, category_id)))


@router.put("/{category_id}")
def update_category(
    category_id: str,
    payload: CategoryCreate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    category = _get_category(db, category_id)

    # an empty or missing parent makes it a top-level category
    parent = payload.parent_category or None
    if parent:
        if not is_object_id(parent):
            raise ValidationError("Invalid parent category ID")
        if parent == category_id:
            raise ValidationError("Category cannot be its own parent")
        if not db.categories.find_one({"_id": to_object_id(parent)}):
            raise NotFoundError("Parent category not found")

    changes = {"name": payload.name or category["name"], "parent_category": parent, "updatedAt": utcnow()}
    db.categories.update_one({"_id": category["_id"]}, {"$set": changes})
    category.update(changes)
    return serialize(category)


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    category = _get_category(db, category_id)

    subcategories = db.categories.count_documents({"parent_category": category_id})
    if subcategories:
        raise ConflictError(f"Cannot delete category: {subcategories} subcategory(ies) associated")
    products = db.products.count_documents({"$or": [{"category": category_id}, {"subcategories": category_id}]})
    if products:
        raise ConflictError(f"Cannot delete category: {products} product(s) associated")

    db.categories.delete_one({"_id": category["_id"]})
    return {"message": "Category deleted successfully"}
