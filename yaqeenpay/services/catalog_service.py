# yaqeenpay/services/catalog_service.py

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import ValidationError, NotFoundError, \
    PermissionDeniedError, InvalidStateError
from yaqeenpay.core.money import to_decimal, normalize_currency
from yaqeenpay.models.catalog import Category, Product, ProductReview
from yaqeenpay.models.order import Order, OrderItem, OrderStatusEnum
from yaqeenpay.models.user import User, UserRoleEnum

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("name", "description", "price", "category_id",
                  "stock_quantity", "is_active")


class CatalogService:

    @staticmethod
    def category_to_dict(category: Category) -> Dict[str, Any]:
        return {
            "id": category.id,
            "name": category.name,
            "description": category.description
        }

    @staticmethod
    def product_to_dict(product: Product) -> Dict[str, Any]:
        return {
            "id": product.id,
            "seller_id": product.seller_id,
            "category_id": product.category_id,
            "name": product.name,
            "description": product.description,
            "price": product.price,
            "currency": product.currency,
            "stock_quantity": product.stock_quantity,
            "is_active": product.is_active,
            "created_at": product.created_at.isoformat() if product.created_at else None
        }

    @staticmethod
    def review_to_dict(review: ProductReview) -> Dict[str, Any]:
        return {
            "id": review.id,
            "product_id": review.product_id,
            "user_id": review.user_id,
            "rating": review.rating,
            "comment": review.comment,
            "created_at": review.created_at.isoformat() if review.created_at else None
        }

    @staticmethod
    def create_category(db: Session, admin: User, name: str,
                        description: Optional[str] = None) -> Category:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        name = name.strip()
        if db.query(Category).filter(Category.name == name).first():
            raise ValidationError(f"Category '{name}' already exists")

        category = Category(name=name, description=description)
        db.add(category)
        db.commit()
        db.refresh(category)
        logger.info(f"Category {category.id} '{name}' created by {admin.id}")
        return category

    @staticmethod
    def list_categories(db: Session) -> List[Category]:
        return db.query(Category).order_by(Category.name).all()

    @staticmethod
    def _check_category(db: Session, category_id: Optional[int]) -> None:
        if category_id is not None and not db.query(Category).filter(
                Category.id == category_id).first():
            raise NotFoundError(f"Category {category_id} not found")

    @staticmethod
    def create_product(db: Session, user: User, name: str, price,
                       description: Optional[str] = None,
                       category_id: Optional[int] = None,
                       stock_quantity: int = 0,
                       currency: Optional[str] = None) -> Product:
        if user.role != UserRoleEnum.seller and not user.is_admin:
            raise PermissionDeniedError("Only sellers can list products")
        price = to_decimal(price)
        if price <= 0:
            raise ValidationError("Price must be greater than zero")
        if stock_quantity < 0:
            raise ValidationError("Stock quantity cannot be negative")
        CatalogService._check_category(db, category_id)

        product = Product(
            seller_id=user.id,
            category_id=category_id,
            name=name,
            description=description,
            price=price,
            currency=normalize_currency(currency),
            stock_quantity=stock_quantity,
            is_active=True
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        logger.info(f"Product {product.id} created by seller {user.id}")
        return product

    @staticmethod
    def update_product(db: Session, user: User, product_id: int,
                       changes: Dict[str, Any]) -> Product:
        product = CatalogService.get_product(db, product_id)
        if product.seller_id != user.id:
            raise PermissionDeniedError("Only the owner can update a product")

        for field, value in changes.items():
            if field not in PRODUCT_FIELDS or value is None:
                continue
            if field == "price":
                value = to_decimal(value)
                if value <= 0:
                    raise ValidationError("Price must be greater than zero")
            if field == "stock_quantity" and value < 0:
                raise ValidationError("Stock quantity cannot be negative")
            if field == "category_id":
                CatalogService._check_category(db, value)
            setattr(product, field, value)

        db.commit()
        db.refresh(product)
        return product

    @staticmethod
    def list_products(db: Session, category_id: Optional[int] = None,
                      seller_id: Optional[int] = None,
                      search: Optional[str] = None):
        """Query of active products; callers paginate"""
        query = db.query(Product).filter(Product.is_active.is_(True))
        if category_id is not None:
            query = query.filter(Product.category_id == category_id)
        if seller_id is not None:
            query = query.filter(Product.seller_id == seller_id)
        if search:
            query = query.filter(Product.name.ilike(f"%{search}%"))
        return query.order_by(Product.created_at.desc(), Product.id.desc())

    @staticmethod
    def get_product(db: Session, product_id: int,
                    lock: bool = False) -> Product:
        query = db.query(Product).filter(Product.id == product_id)
        if lock:
            query = query.with_for_update()
        product = query.first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    def reserve_stock(db: Session, product: Product, quantity: int) -> None:
        if not product.is_active:
            raise InvalidStateError(f"Product {product.id} is not available")
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1")
        if product.stock_quantity < quantity:
            raise ValidationError(
                f"Only {product.stock_quantity} of product {product.id} in stock")
        product.stock_quantity -= quantity
        db.flush()

    @staticmethod
    def release_stock(db: Session, product: Product, quantity: int) -> None:
        product.stock_quantity += quantity
        db.flush()

    @staticmethod
    def add_review(db: Session, user: User, product_id: int, rating: int,
                   comment: Optional[str] = None) -> ProductReview:
        product = CatalogService.get_product(db, product_id)
        if rating < 1 or rating > 5:
            raise ValidationError("Rating must be between 1 and 5")

        purchased = db.query(Order).outerjoin(OrderItem).filter(
            Order.buyer_id == user.id,
            or_(Order.product_id == product.id,
                OrderItem.product_id == product.id),
            Order.status == OrderStatusEnum.completed
        ).first()
        if not purchased:
            raise PermissionDeniedError(
                "Only buyers with a completed order can review this product")

        if db.query(ProductReview).filter(
                ProductReview.product_id == product.id,
                ProductReview.user_id == user.id).first():
            raise ValidationError("You have already reviewed this product")

        review = ProductReview(product_id=product.id, user_id=user.id,
                               rating=rating, comment=comment)
        db.add(review)
        db.commit()
        db.refresh(review)
        return review

    @staticmethod
    def list_reviews(db: Session, product_id: int) -> Dict[str, Any]:
        CatalogService.get_product(db, product_id)
        reviews = db.query(ProductReview).filter(
            ProductReview.product_id == product_id).order_by(
            ProductReview.created_at.desc()).all()
        average = db.query(func.avg(ProductReview.rating)).filter(
            ProductReview.product_id == product_id).scalar()
        return {
            "reviews": reviews,
            "count": len(reviews),
            "average_rating": round(float(average), 2) if average else None
        }
