# yaqeenpay/api/products.py

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user, get_current_admin_user
from yaqeenpay.models.user import User
from yaqeenpay.schemas.marketplace import CategoryCreate, ProductCreate, \
    ProductUpdate, ProductReviewCreate
from yaqeenpay.services.catalog_service import CatalogService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, paginate, log_admin_operation

logger = logging.getLogger(__name__)

router = APIRouter()
categories_router = APIRouter()


@categories_router.get("")
@handle_operation_errors("list categories")
async def list_categories(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    categories = CatalogService.list_categories(db)
    return create_success_response(
        "categories", [CatalogService.category_to_dict(c) for c in categories],
        current_user.id)


@categories_router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("create category")
async def create_category(
        payload: CategoryCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    category = CatalogService.create_category(db, current_user, payload.name,
                                              payload.description)
    log_admin_operation("create_category", current_user.id,
                        {"name": category.name}, db,
                        entity_type="category", entity_id=category.id)
    return create_success_response("category_created",
                                   CatalogService.category_to_dict(category),
                                   current_user.id)


@router.get("")
@handle_operation_errors("list products")
async def list_products(
        category_id: Optional[int] = None,
        seller_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = paginate(
        CatalogService.list_products(db, category_id, seller_id, search),
        page, page_size)
    result["items"] = [CatalogService.product_to_dict(p)
                       for p in result["items"]]
    return create_success_response("products", result, current_user.id)


@router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("create product")
async def create_product(
        payload: ProductCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    product = CatalogService.create_product(
        db, current_user,
        name=payload.name,
        price=payload.price,
        description=payload.description,
        category_id=payload.category_id,
        stock_quantity=payload.stock_quantity,
        currency=payload.currency
    )
    return create_success_response("product_created",
                                   CatalogService.product_to_dict(product),
                                   current_user.id)


@router.get("/{product_id}")
@handle_operation_errors("get product")
async def get_product(
        product_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    product = CatalogService.get_product(db, product_id)
    return create_success_response("product",
                                   CatalogService.product_to_dict(product),
                                   current_user.id)


@router.put("/{product_id}")
@handle_operation_errors("update product")
async def update_product(
        product_id: int,
        payload: ProductUpdate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    product = CatalogService.update_product(
        db, current_user, product_id, payload.model_dump(exclude_unset=True))
    return create_success_response("product_updated",
                                   CatalogService.product_to_dict(product),
                                   current_user.id)


@router.get("/{product_id}/reviews")
@handle_operation_errors("list product reviews")
async def list_reviews(
        product_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = CatalogService.list_reviews(db, product_id)
    result["reviews"] = [CatalogService.review_to_dict(r)
                         for r in result["reviews"]]
    return create_success_response("product_reviews", result, current_user.id)


@router.post("/{product_id}/reviews", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("add product review")
async def add_review(
        product_id: int,
        payload: ProductReviewCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Only buyers with a completed order for the product may review it"""
    review = CatalogService.add_review(db, current_user, product_id,
                                       payload.rating, payload.comment)
    return create_success_response("product_review_added",
                                   CatalogService.review_to_dict(review),
                                   current_user.id)
