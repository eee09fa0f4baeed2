# yaqeenpay/models/kyc.py

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, \
    Text
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class KycDocumentTypeEnum(enum.Enum):
    cnic = "cnic"
    passport = "passport"
    driving_license = "driving_license"
    utility_bill = "utility_bill"
    business_registration = "business_registration"


class VerificationStatusEnum(enum.Enum):
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class KycDocument(Base):
    __tablename__ = "kyc_documents"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    document_type = Column(Enum(KycDocumentTypeEnum), nullable=False)
    document_number = Column(String(64), nullable=True)
    document_url = Column(String(500), nullable=False)
    status = Column(Enum(VerificationStatusEnum),
                    default=VerificationStatusEnum.pending, nullable=False,
                    index=True)
    rejection_reason = Column(Text, nullable=True)

    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    user = relationship("User", back_populates="kyc_documents",
                        foreign_keys=[user_id])


class BusinessProfile(Base):
    __tablename__ = "business_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True,
                     nullable=False)
    business_name = Column(String(200), nullable=False)
    business_type = Column(String(100), nullable=True)
    business_category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    website = Column(String(255), nullable=True)
    phone_number = Column(String(32), nullable=True)

    verification_status = Column(Enum(VerificationStatusEnum),
                                 default=VerificationStatusEnum.pending,
                                 nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)

    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    verified_at = Column(DateTime, nullable=True)
    verified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    user = relationship("User", back_populates="business_profile",
                        foreign_keys=[user_id])
