# yaqeenpay/api/auth.py

import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import (
    authenticate_user,
    get_password_hash,
    verify_password,
    get_current_user,
    issue_token_pair,
    rotate_refresh_token,
    revoke_refresh_token
)
from yaqeenpay.models.user import User
from yaqeenpay.schemas.user import UserCreate, UserResponse, PasswordChange, \
    RefreshRequest
from yaqeenpay.services.wallet_service import WalletService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, client_ip

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login")
@handle_operation_errors("user login")
async def login(
        request: Request,
        form_data: OAuth2PasswordRequestForm = Depends(),
        db: Session = Depends(get_db)
):
    """User login with username or email"""
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )

    tokens = issue_token_pair(db, user, client_ip(request))
    db.commit()

    logger.info(f"User {user.username} logged in successfully")

    return create_success_response("login", tokens, user.id,
                                   "Logged in successfully")


@router.post("/register", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("user registration")
async def register(
        user_data: UserCreate,
        db: Session = Depends(get_db)
):
    """Register new user together with an empty wallet"""
    existing_user = db.query(User).filter(
        User.username == user_data.username).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered"
        )

    if user_data.email:
        existing_email = db.query(User).filter(
            User.email == user_data.email).first()
        if existing_email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

    user = User(
        username=user_data.username,
        password_hash=get_password_hash(user_data.password),
        email=user_data.email,
        full_name=user_data.full_name,
        phone_number=user_data.phone_number,
        role=user_data.role,
        is_active=True,
        is_admin=False
    )
    db.add(user)
    db.flush()
    WalletService.get_or_create_wallet(db, user.id)
    db.commit()
    db.refresh(user)

    logger.info(f"New user registered: {user.username} ({user.role.value})")

    return create_success_response(
        "user_registered",
        UserResponse.model_validate(user).model_dump(),
        user.id,
        "Registration successful"
    )


@router.post("/refresh")
@handle_operation_errors("refresh token")
async def refresh_token(
        payload: RefreshRequest,
        request: Request,
        db: Session = Depends(get_db)
):
    """Rotate a refresh token into a new token pair"""
    tokens = rotate_refresh_token(db, payload.refresh_token,
                                  client_ip(request))
    return create_success_response("token_refreshed", tokens)


@router.post("/logout")
@handle_operation_errors("logout")
async def logout(
        payload: RefreshRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Revoke a refresh token"""
    revoked = revoke_refresh_token(db, payload.refresh_token)
    return create_success_response("logged_out", {"revoked": revoked},
                                   current_user.id)


@router.post("/change-password")
@handle_operation_errors("change password")
async def change_password(
        password_data: PasswordChange,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Change user password"""
    if not verify_password(password_data.current_password,
                           current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect current password"
        )

    current_user.password_hash = get_password_hash(password_data.new_password)
    db.commit()

    logger.info(f"User {current_user.username} changed password")

    return create_success_response("password_changed", {
        "message": "Password changed successfully"
    }, current_user.id)


@router.get("/me")
@handle_operation_errors("get current user")
async def get_current_user_info(
        current_user: User = Depends(get_current_user)
):
    """Get current user information"""
    return create_success_response(
        "current_user",
        UserResponse.model_validate(current_user).model_dump(),
        current_user.id
    )
