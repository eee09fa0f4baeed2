# yaqeenpay/api/utils.py

import inspect
import json
import logging
from datetime import datetime
from functools import wraps
from typing import Dict, Any, Callable, Optional
from sqlalchemy.orm import Session
from fastapi import HTTPException, Request, status
from yaqeenpay.core.exceptions import YaqeenPayError
from yaqeenpay.models.admin import AuditLog

logger = logging.getLogger(__name__)


def _to_http_exception(operation_name: str, exc: Exception) -> HTTPException:
    if isinstance(exc, YaqeenPayError):
        logger.warning(f"{operation_name} rejected: {exc.message}")
        return HTTPException(status_code=exc.status_code, detail=exc.message)

    logger.error(f"Error in {operation_name}: {str(exc)}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {operation_name}: {str(exc)}"
    )


def handle_operation_errors(operation_name: str):
    """Decorator for unified error handling"""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                raise _to_http_exception(operation_name, e) from e

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                raise _to_http_exception(operation_name, e) from e

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def create_success_response(
        operation: str,
        data: Any,
        user_id: Optional[int] = None,
        message: Optional[str] = None
) -> Dict[str, Any]:
    """Create standardized success response"""
    response = {
        "success": True,
        "status": "success",
        "operation": operation,
        "message": message,
        "timestamp": datetime.utcnow().isoformat(),
        "data": data
    }

    if user_id:
        response["user_id"] = user_id

    return response


def create_error_response(message: str, errors: Optional[list] = None) -> Dict[
    str, Any]:
    return {
        "success": False,
        "message": message,
        "errors": errors if errors is not None else [message],
        "detail": message
    }


def log_admin_operation(
        operation: str,
        admin_id: int,
        details: Optional[Dict[str, Any]] = None,
        db: Optional[Session] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None
) -> None:
    """Log admin operations for audit; persisted when a session is given"""
    log_entry = {
        "operation": operation,
        "admin_id": admin_id,
        "timestamp": datetime.utcnow().isoformat(),
        "details": details or {}
    }

    logger.info(f"Admin operation: {log_entry}")

    if db is not None:
        db.add(AuditLog(
            admin_id=admin_id,
            action=operation,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=json.dumps(details or {}, default=str)
        ))
        db.commit()


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def paginate(query, page: int, page_size: int) -> Dict[str, Any]:
    """Apply page/page_size to a query and return items plus totals"""
    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    total_pages = (total + page_size - 1) // page_size if page_size else 0
    return {
        "items": items,
        "total_count": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages
    }
