from typing import Dict

from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from auth import utils as auth_utils
from database import get_db, serialize
from schemas import ProductCreate, ProductUpdate, ReviewCreate
from services import catalog

# Note: the cart endpoints share this '/api/products' prefix (routers/cart.py)
router = APIRouter(prefix="/api/products", tags=["Products"])


@router.get("/products")
def get_products(db: Database = Depends(get_db)):
    products = list(db.products.find().sort("createdAt", -1))
    return serialize(catalog.with_categories(db, products))


@router.get("/product/{product_id}")
def get_product_by_id(product_id: str, db: Database = Depends(get_db)):
    product = catalog.get_product(db, product_id)
    return serialize(catalog.with_categories(db, [product])[0])


@router.get("/category/{category_id}")
def get_products_by_category(category_id: str, db: Database = Depends(get_db)):
    products = catalog.products_in_category(db, category_id)
    return serialize(catalog.with_categories(db, products))


@router.post("/create-product", status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    product = catalog.create_product(db, payload)
    return serialize(catalog.with_categories(db, [product])[0])


@router.put("/product/{product_id}")
def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    product = catalog.update_product(db, product_id, payload)
    return serialize(catalog.with_categories(db, [product])[0])


@router.delete("/product/{product_id}")
def delete_product(
    product_id: str,
    db: Database = Depends(get_db),
    admin: Dict = Depends(auth_utils.get_admin_user),
):
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted successfully"}


# --- Reviews ---

@router.post("/reviews/{product_id}", status_code=status.HTTP_201_CREATED)
def submit_review(product_id: str, payload: ReviewCreate, db: Database = Depends(get_db)):
    return serialize(catalog.submit_review(db, product_id, payload))


@router.get("/reviews/{product_id}")
def get_reviews(product_id: str, db: Database = Depends(get_db)):
    return serialize(catalog.list_reviews(db, product_id))
