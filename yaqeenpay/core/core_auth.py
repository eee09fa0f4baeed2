# yaqeenpay/core/core_auth.py

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional, Tuple
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy import or_
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import get_db
from yaqeenpay.core.exceptions import AuthenticationError
from yaqeenpay.models.user import User, RefreshToken

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

PBKDF2_ITERATIONS = 100000
REFRESH_TOKEN_RETENTION_DAYS = 7


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against salted PBKDF2 hash"""
    try:
        salt = hashed_password[:32]
        password_hash = hashed_password[32:]

        computed_hash = hashlib.pbkdf2_hmac('sha256',
                                            plain_password.encode('utf-8'),
                                            salt.encode('utf-8'),
                                            PBKDF2_ITERATIONS)

        return secrets.compare_digest(computed_hash.hex(), password_hash)
    except (TypeError, ValueError) as e:
        logger.error(f"Password verification error: {str(e)}")
        return False


def get_password_hash(password: str) -> str:
    """Generate secure password hash using PBKDF2"""
    salt = secrets.token_hex(16)
    password_hash = hashlib.pbkdf2_hmac('sha256',
                                        password.encode('utf-8'),
                                        salt.encode('utf-8'),
                                        PBKDF2_ITERATIONS)
    return salt + password_hash.hex()


def create_access_token(data: dict,
                        expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    now = datetime.utcnow()
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(
            minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({
        "exp": expire,
        "iat": int(now.timestamp()),
        "jti": str(uuid.uuid4()),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    })
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY,
                             algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def verify_token(token: str) -> Optional[dict]:
    """Verify JWT signature, expiry, issuer and audience"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY,
                             algorithms=[settings.JWT_ALGORITHM],
                             audience=settings.JWT_AUDIENCE,
                             issuer=settings.JWT_ISSUER)
        return payload
    except JWTError:
        return None


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_refresh_token(db: Session, user: User,
                         ip_address: Optional[str] = None) -> Tuple[str, RefreshToken]:
    """Issue a refresh token; only its hash is stored"""
    raw_token = secrets.token_urlsafe(64)
    record = RefreshToken(
        user_id=user.id,
        token_hash=hash_refresh_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(
            days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        created_by_ip=ip_address
    )
    db.add(record)
    db.flush()
    return raw_token, record


def issue_token_pair(db: Session, user: User,
                     ip_address: Optional[str] = None) -> dict:
    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value})
    refresh_token, record = create_refresh_token(db, user, ip_address)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "refresh_token_expires_at": record.expires_at
    }


def rotate_refresh_token(db: Session, raw_token: str,
                         ip_address: Optional[str] = None) -> dict:
    """Exchange an active refresh token for a new token pair"""
    record = db.query(RefreshToken).filter(
        RefreshToken.token_hash == hash_refresh_token(raw_token)
    ).first()
    if not record:
        raise AuthenticationError("Invalid refresh token")

    user = db.query(User).filter(User.id == record.user_id).first()
    if not user or not user.is_active:
        raise AuthenticationError("Invalid refresh token")

    if not record.is_active:
        logger.warning(f"Inactive refresh token presented for user {user.id}")
        raise AuthenticationError("Inactive refresh token")

    tokens = issue_token_pair(db, user, ip_address)
    record.revoked_at = datetime.utcnow()
    record.replaced_by_hash = hash_refresh_token(tokens["refresh_token"])

    # Drop dead tokens well past their expiry
    cutoff = datetime.utcnow() - timedelta(days=REFRESH_TOKEN_RETENTION_DAYS)
    db.query(RefreshToken).filter(
        RefreshToken.user_id == user.id,
        RefreshToken.expires_at <= cutoff,
    ).delete(synchronize_session=False)

    db.commit()
    logger.info(f"Refresh token rotated for user {user.id}")
    return tokens


def revoke_refresh_token(db: Session, raw_token: str) -> bool:
    record = db.query(RefreshToken).filter(
        RefreshToken.token_hash == hash_refresh_token(raw_token)
    ).first()
    if not record or record.revoked_at is not None:
        return False
    record.revoked_at = datetime.utcnow()
    db.commit()
    return True


async def get_current_user(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
        db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )

    return user


async def get_current_admin_user(
        current_user: User = Depends(get_current_user)
) -> User:
    """Get current authenticated admin user"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin rights required"
        )
    return current_user


def authenticate_user(db: Session, login: str, password: str) -> Optional[
    User]:
    """Authenticate user by username or email"""
    user = db.query(User).filter(
        or_(User.username == login, User.email == login)
    ).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
