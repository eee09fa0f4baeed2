# yaqeenpay/api/users.py

import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.core.exceptions import ValidationError
from yaqeenpay.models.user import User
from yaqeenpay.schemas.user import UserResponse, UserUpdate
from yaqeenpay.schemas.marketplace import KycDocumentCreate, \
    BusinessProfileRequest
from yaqeenpay.services.kyc_service import KycService
from yaqeenpay.api.utils import handle_operation_errors, create_success_response

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me")
@handle_operation_errors("get profile")
async def get_profile(
        current_user: User = Depends(get_current_user)
):
    return create_success_response(
        "profile", UserResponse.model_validate(current_user).model_dump(),
        current_user.id)


@router.put("/me")
@handle_operation_errors("update profile")
async def update_profile(
        payload: UserUpdate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("email") and db.query(User).filter(
            User.email == changes["email"], User.id != current_user.id).first():
        raise ValidationError("Email already registered")

    for field, value in changes.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)

    return create_success_response(
        "profile_updated",
        UserResponse.model_validate(current_user).model_dump(),
        current_user.id)


@router.get("/kyc-documents")
@handle_operation_errors("list kyc documents")
async def list_kyc_documents(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    documents = KycService.list_documents(db, current_user.id)
    return create_success_response("kyc_documents", {
        "kyc_status": current_user.kyc_status.value,
        "documents": [KycService.document_to_dict(d) for d in documents]
    }, current_user.id)


@router.post("/kyc-documents", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("submit kyc document")
async def submit_kyc_document(
        payload: KycDocumentCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    document = KycService.submit_document(db, current_user,
                                          payload.document_type,
                                          payload.document_url,
                                          payload.document_number)
    return create_success_response("kyc_document_submitted",
                                   KycService.document_to_dict(document),
                                   current_user.id)


@router.get("/seller-profile")
@handle_operation_errors("get seller profile")
async def get_seller_profile(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    profile = KycService.get_business_profile(db, current_user.id)
    return create_success_response("seller_profile",
                                   KycService.profile_to_dict(profile),
                                   current_user.id)


@router.post("/seller-profile")
@handle_operation_errors("submit seller profile")
async def submit_seller_profile(
        payload: BusinessProfileRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Create or resubmit the business profile; it goes back to review"""
    profile = KycService.submit_business_profile(db, current_user,
                                                 payload.model_dump())
    return create_success_response("seller_profile_submitted",
                                   KycService.profile_to_dict(profile),
                                   current_user.id)
