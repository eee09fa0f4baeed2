# yaqeenpay/services/kyc_service.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import NotFoundError, PermissionDeniedError, \
    InvalidStateError, ValidationError
from yaqeenpay.models.kyc import KycDocument, BusinessProfile, \
    KycDocumentTypeEnum, VerificationStatusEnum
from yaqeenpay.models.user import User, UserRoleEnum, KycStatusEnum

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("business_name", "business_type", "business_category",
                  "description", "website", "phone_number")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class KycService:
    """Identity documents and seller business profiles"""

    @staticmethod
    def document_to_dict(document: KycDocument) -> Dict[str, Any]:
        return {
            "id": document.id,
            "user_id": document.user_id,
            "document_type": document.document_type.value,
            "document_number": document.document_number,
            "document_url": document.document_url,
            "status": document.status.value,
            "rejection_reason": document.rejection_reason,
            "submitted_at": _iso(document.submitted_at),
            "verified_at": _iso(document.verified_at),
            "verified_by_id": document.verified_by_id
        }

    @staticmethod
    def profile_to_dict(profile: BusinessProfile) -> Dict[str, Any]:
        data = {field: getattr(profile, field) for field in PROFILE_FIELDS}
        data.update({
            "id": profile.id,
            "user_id": profile.user_id,
            "verification_status": profile.verification_status.value,
            "rejection_reason": profile.rejection_reason,
            "submitted_at": _iso(profile.submitted_at),
            "verified_at": _iso(profile.verified_at),
            "verified_by_id": profile.verified_by_id
        })
        return data

    @staticmethod
    def submit_document(db: Session, user: User,
                        document_type: KycDocumentTypeEnum, document_url: str,
                        document_number: Optional[str] = None) -> KycDocument:
        document = KycDocument(
            user_id=user.id,
            document_type=document_type,
            document_number=document_number,
            document_url=document_url,
            status=VerificationStatusEnum.pending
        )
        db.add(document)
        user.kyc_status = KycStatusEnum.pending
        db.commit()
        db.refresh(document)
        logger.info(
            f"KYC document {document.id} ({document_type.value}) submitted by user {user.id}")
        return document

    @staticmethod
    def list_documents(db: Session, user_id: int) -> List[KycDocument]:
        return db.query(KycDocument).filter(
            KycDocument.user_id == user_id).order_by(
            KycDocument.submitted_at.desc()).all()

    @staticmethod
    def submit_business_profile(db: Session, user: User,
                                data: Dict[str, Any]) -> BusinessProfile:
        if not data.get("business_name"):
            raise ValidationError("Business name is required")

        profile = db.query(BusinessProfile).filter(
            BusinessProfile.user_id == user.id).first()
        if profile and profile.verification_status == VerificationStatusEnum.verified:
            raise InvalidStateError(
                "A verified business profile cannot be changed")

        if not profile:
            profile = BusinessProfile(user_id=user.id)
            db.add(profile)
        for field in PROFILE_FIELDS:
            if field in data:
                setattr(profile, field, data[field])
        profile.verification_status = VerificationStatusEnum.pending
        profile.rejection_reason = None
        profile.submitted_at = datetime.utcnow()

        db.commit()
        db.refresh(profile)
        logger.info(f"Business profile submitted by user {user.id}")
        return profile

    @staticmethod
    def get_business_profile(db: Session, user_id: int) -> BusinessProfile:
        profile = db.query(BusinessProfile).filter(
            BusinessProfile.user_id == user_id).first()
        if not profile:
            raise NotFoundError("Business profile not found")
        return profile

    @staticmethod
    def verify_document(db: Session, admin: User, document_id: int,
                        status: VerificationStatusEnum,
                        reason: Optional[str] = None) -> KycDocument:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        if status == VerificationStatusEnum.pending:
            raise ValidationError("Status must be verified or rejected")

        document = db.query(KycDocument).filter(
            KycDocument.id == document_id).first()
        if not document:
            raise NotFoundError(f"KYC document {document_id} not found")

        document.status = status
        document.verified_at = datetime.utcnow()
        document.verified_by_id = admin.id
        document.rejection_reason = reason if status == VerificationStatusEnum.rejected else None
        db.flush()

        user = document.user
        if status == VerificationStatusEnum.rejected:
            user.kyc_status = KycStatusEnum.rejected
        else:
            statuses = {d.status for d in KycService.list_documents(db, user.id)}
            if statuses == {VerificationStatusEnum.verified}:
                user.kyc_status = KycStatusEnum.verified

        db.commit()
        db.refresh(document)
        logger.info(
            f"KYC document {document.id} {status.value} by admin {admin.id}; user {user.id} kyc {user.kyc_status.value}")
        return document

    @staticmethod
    def verify_business_profile(db: Session, admin: User, profile_id: int,
                                approve: bool,
                                reason: Optional[str] = None) -> BusinessProfile:
        if not admin.is_admin:
            raise PermissionDeniedError("Admin rights required")
        profile = db.query(BusinessProfile).filter(
            BusinessProfile.id == profile_id).first()
        if not profile:
            raise NotFoundError(f"Business profile {profile_id} not found")
        if not approve and not reason:
            raise ValidationError("A rejection reason is required")

        profile.verified_at = datetime.utcnow()
        profile.verified_by_id = admin.id
        if approve:
            profile.verification_status = VerificationStatusEnum.verified
            profile.rejection_reason = None
            if not profile.user.is_admin:
                profile.user.role = UserRoleEnum.seller
        else:
            profile.verification_status = VerificationStatusEnum.rejected
            profile.rejection_reason = reason

        db.commit()
        db.refresh(profile)
        logger.info(
            f"Business profile {profile.id} {'approved' if approve else 'rejected'} by admin {admin.id}")
        return profile

    @staticmethod
    def pending_documents(db: Session) -> List[KycDocument]:
        return db.query(KycDocument).filter(
            KycDocument.status == VerificationStatusEnum.pending).order_by(
            KycDocument.submitted_at).all()

    @staticmethod
    def pending_profiles(db: Session) -> List[BusinessProfile]:
        return db.query(BusinessProfile).filter(
            BusinessProfile.verification_status == VerificationStatusEnum.pending
        ).order_by(BusinessProfile.submitted_at).all()
