# yaqeenpay/services/rating_service.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    PermissionDeniedError, InvalidStateError
from yaqeenpay.models.order import Order, OrderStatusEnum
from yaqeenpay.models.rating import Rating
from yaqeenpay.models.user import User

logger = logging.getLogger(__name__)

RATING_CATEGORIES = ["overall", "communication", "reliability", "quality",
                     "speed"]
RATEABLE_STATUSES = [OrderStatusEnum.completed,
                     OrderStatusEnum.dispute_resolved]


class RatingService:

    @staticmethod
    def to_dict(rating: Rating) -> Dict[str, Any]:
        return {
            "id": rating.id,
            "order_id": rating.order_id,
            "reviewer_id": rating.reviewer_id,
            "reviewee_id": rating.reviewee_id,
            "reviewer_role": rating.reviewer_role,
            "reviewee_role": rating.reviewee_role,
            "score": rating.score,
            "comment": rating.comment,
            "category": rating.category,
            "is_verified": rating.is_verified,
            "created_at": rating.created_at.isoformat() if rating.created_at else None,
            "updated_at": rating.updated_at.isoformat() if rating.updated_at else None
        }

    @staticmethod
    def _validate(score: int, category: str) -> None:
        if score < 1 or score > 5:
            raise ValidationError("Score must be between 1 and 5")
        if category not in RATING_CATEGORIES:
            raise ValidationError(
                f"Category must be one of {', '.join(RATING_CATEGORIES)}")

    @staticmethod
    def can_rate(db: Session, order: Order, user: User) -> Dict[str, Any]:
        if not order.is_party(user.id):
            return {"can_rate": False, "reason": "Not a party to this order"}
        if order.status not in RATEABLE_STATUSES:
            return {"can_rate": False,
                    "reason": f"Order is {order.status.value}"}
        already = db.query(Rating).filter(
            Rating.order_id == order.id,
            Rating.reviewer_id == user.id
        ).first()
        if already:
            return {"can_rate": False, "reason": "Already rated",
                    "rating_id": already.id}
        return {"can_rate": True, "reason": None}

    @staticmethod
    def _order(db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    @staticmethod
    def permission(db: Session, order_id: int, user: User) -> Dict[str, Any]:
        return RatingService.can_rate(db, RatingService._order(db, order_id),
                                      user)

    @staticmethod
    def create(db: Session, user: User, order_id: int, score: int,
               comment: Optional[str] = None,
               category: str = "overall") -> Rating:
        RatingService._validate(score, category)
        order = RatingService._order(db, order_id)
        check = RatingService.can_rate(db, order, user)
        if not check["can_rate"]:
            if not order.is_party(user.id):
                raise PermissionDeniedError(check["reason"])
            raise InvalidStateError(f"Cannot rate order: {check['reason']}")

        is_buyer = user.id == order.buyer_id
        rating = Rating(
            order_id=order.id,
            reviewer_id=user.id,
            reviewee_id=order.seller_id if is_buyer else order.buyer_id,
            reviewer_role="buyer" if is_buyer else "seller",
            reviewee_role="seller" if is_buyer else "buyer",
            score=score,
            comment=comment,
            category=category,
            is_verified=True
        )
        db.add(rating)
        db.commit()
        db.refresh(rating)
        logger.info(
            f"Rating {rating.id} on order {order.code}: {user.id} -> {rating.reviewee_id} ({score})")
        return rating

    @staticmethod
    def update(db: Session, user: User, rating_id: int,
               score: Optional[int] = None,
               comment: Optional[str] = None) -> Rating:
        rating = db.query(Rating).filter(Rating.id == rating_id).first()
        if not rating:
            raise NotFoundError(f"Rating {rating_id} not found")
        if rating.reviewer_id != user.id:
            raise PermissionDeniedError("Only the reviewer can edit a rating")

        if score is not None:
            RatingService._validate(score, rating.category)
            rating.score = score
        if comment is not None:
            rating.comment = comment
        rating.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(rating)
        return rating

    @staticmethod
    def stats(db: Session, user_id: int) -> Dict[str, Any]:
        rows = db.query(Rating.score, func.count(Rating.id)).filter(
            Rating.reviewee_id == user_id).group_by(Rating.score).all()

        distribution = {str(score): 0 for score in range(1, 6)}
        total = 0
        weighted = 0
        for score, count in rows:
            distribution[str(score)] = count
            total += count
            weighted += score * count

        return {
            "user_id": user_id,
            "average_score": round(weighted / total, 2) if total else 0.0,
            "total_ratings": total,
            "distribution": distribution
        }

    @staticmethod
    def for_order(db: Session, order_id: int) -> List[Rating]:
        return db.query(Rating).filter(Rating.order_id == order_id).order_by(
            Rating.created_at).all()

    @staticmethod
    def received_by(db: Session, user_id: int):
        return db.query(Rating).filter(Rating.reviewee_id == user_id).order_by(
            Rating.created_at.desc(), Rating.id.desc())
