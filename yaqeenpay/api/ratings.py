# yaqeenpay/api/ratings.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.models.user import User
from yaqeenpay.schemas.marketplace import RatingCreate, RatingUpdate
from yaqeenpay.services.rating_service import RatingService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, paginate

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("create rating")
async def create_rating(
        payload: RatingCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Rate the other party of a finished order"""
    rating = RatingService.create(db, current_user, payload.order_id,
                                  payload.score, payload.comment,
                                  payload.category)
    return create_success_response("rating_created",
                                   RatingService.to_dict(rating),
                                   current_user.id)


@router.get("")
@handle_operation_errors("list received ratings")
async def list_received_ratings(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = paginate(RatingService.received_by(db, current_user.id), page,
                      page_size)
    result["items"] = [RatingService.to_dict(r) for r in result["items"]]
    return create_success_response("ratings", result, current_user.id)


@router.get("/permission")
@handle_operation_errors("check rating permission")
async def rating_permission(
        order_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response(
        "rating_permission",
        RatingService.permission(db, order_id, current_user),
        current_user.id)


@router.get("/stats/{user_id}")
@handle_operation_errors("get rating stats")
async def rating_stats(
        user_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response("rating_stats",
                                   RatingService.stats(db, user_id),
                                   current_user.id)


@router.get("/order/{order_id}")
@handle_operation_errors("get order ratings")
async def order_ratings(
        order_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    ratings = RatingService.for_order(db, order_id)
    return create_success_response(
        "order_ratings", [RatingService.to_dict(r) for r in ratings],
        current_user.id)


@router.put("/{rating_id}")
@handle_operation_errors("update rating")
async def update_rating(
        rating_id: int,
        payload: RatingUpdate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    rating = RatingService.update(db, current_user, rating_id, payload.score,
                                  payload.comment)
    return create_success_response("rating_updated",
                                   RatingService.to_dict(rating),
                                   current_user.id)
