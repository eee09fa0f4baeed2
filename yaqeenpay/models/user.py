# yaqeenpay/models/user.py

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from yaqeenpay.core.database import Base


class UserRoleEnum(enum.Enum):
    buyer = "buyer"
    seller = "seller"
    admin = "admin"


class KycStatusEnum(enum.Enum):
    not_submitted = "not_submitted"
    pending = "pending"
    verified = "verified"
    rejected = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone_number = Column(String(32), nullable=True)
    full_name = Column(String(200), nullable=True)
    role = Column(Enum(UserRoleEnum), default=UserRoleEnum.buyer,
                  nullable=False)
    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)
    kyc_status = Column(Enum(KycStatusEnum),
                        default=KycStatusEnum.not_submitted, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now())

    # Relationships
    wallet = relationship("Wallet", back_populates="user", uselist=False)
    refresh_tokens = relationship("RefreshToken", back_populates="user",
                                  cascade="all, delete-orphan")
    kyc_documents = relationship("KycDocument", back_populates="user",
                                 foreign_keys="KycDocument.user_id")
    business_profile = relationship("BusinessProfile", back_populates="user",
                                    foreign_keys="BusinessProfile.user_id",
                                    uselist=False)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    token_hash = Column(String(128), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by_ip = Column(String(64), nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_hash = Column(String(128), nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    @property
    def is_expired(self) -> bool:
        return datetime.utcnow() >= self.expires_at

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None and not self.is_expired
