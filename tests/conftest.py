# tests/conftest.py

import os
import sys
from pathlib import Path

# Add project root to sys.path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BACKGROUND_JOBS_ENABLED"] = "false"

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from yaqeenpay.main import app
from yaqeenpay.core.database import get_db, Base
from yaqeenpay.core.core_auth import create_access_token, get_password_hash
from yaqeenpay.models.topup import TopUpChannelEnum
from yaqeenpay.models.user import User, UserRoleEnum
from yaqeenpay.services.topup_service import TopUpService
from yaqeenpay.services.wallet_service import WalletService

TEST_PASSWORD = "password123"

# Test database setup
engine = create_engine(
    "sqlite://",
    connect_args={
        "check_same_thread": False,
    },
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False,
                                   bind=engine)


@pytest.fixture
def db():
    """Fresh schema and session per test; the API shares the session"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    app.dependency_overrides[get_db] = lambda: session

    yield session

    app.dependency_overrides.pop(get_db, None)
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    """FastAPI test client"""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    """Factory for users with an empty wallet"""

    def _make_user(username: str, role: UserRoleEnum = UserRoleEnum.buyer,
                   is_admin: bool = False, **fields) -> User:
        user = User(
            username=username,
            password_hash=get_password_hash(TEST_PASSWORD),
            email=f"{username}@example.com",
            full_name=username.title(),
            role=role,
            is_active=True,
            is_admin=is_admin,
            **fields
        )
        db.add(user)
        db.flush()
        WalletService.get_or_create_wallet(db, user.id)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def buyer(make_user):
    return make_user("buyer")


@pytest.fixture
def seller(make_user):
    return make_user("seller", role=UserRoleEnum.seller)


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", role=UserRoleEnum.admin, is_admin=True)


@pytest.fixture
def headers_for():
    """Bearer headers for any user"""

    def _headers(user: User) -> dict:
        token = create_access_token(data={"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def buyer_headers(buyer, headers_for):
    return headers_for(buyer)


@pytest.fixture
def seller_headers(seller, headers_for):
    return headers_for(seller)


@pytest.fixture
def admin_headers(admin_user, headers_for):
    return headers_for(admin_user)


@pytest.fixture
def fund_wallet(db):
    """Top up a wallet through a confirmed top-up"""

    def _fund(user: User, amount="10000.00"):
        top_up = TopUpService.initiate(db, user, Decimal(str(amount)),
                                       TopUpChannelEnum.jazzcash)
        return TopUpService.confirm(db, top_up.id)

    return _fund