"""
Authentication API endpoints.

Provides register, login, logout and current-principal endpoints. Accounts
(USER / ADMIN) and drivers log in through the same endpoint.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.models.driver import Driver
from backend.app.models.parcel import Parcel
from backend.app.models.enums import UserRole
from backend.app.schemas.auth import UserRegister, UserLogin, TokenResponse, MeResponse, LogoutResponse
from backend.app.core.security import get_password_hash, verify_password
from backend.app.core.jwt import create_access_token, principal_payload
from backend.app.core.dependencies import get_current_user
from backend.app.core.token_revocation import revoke_token
from backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _invalid_credentials() -> AuthenticationError:
    return AuthenticationError("Invalid credentials")


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new USER account.

    Parcels already sent to or from this email address are linked to the
    new account.
    """
    email = str(user_data.email).lower()

    existing_user = await db.execute(select(User.id).where(func.lower(User.email) == email))
    existing_driver = await db.execute(select(Driver.id).where(func.lower(Driver.email) == email))
    if existing_user.scalar_one_or_none() or existing_driver.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    new_user = User(
        name=user_data.name.strip(),
        email=email,
        hashed_password=get_password_hash(user_data.password),
        role=UserRole.USER,
        is_active=True,
    )
    db.add(new_user)
    await db.flush()

    # Link parcels created before the account existed
    await db.execute(
        update(Parcel)
        .where(Parcel.sender_email == email, Parcel.sender_id.is_(None))
        .values(sender_id=new_user.id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Parcel)
        .where(Parcel.receiver_email == email, Parcel.receiver_id.is_(None))
        .values(receiver_id=new_user.id)
        .execution_options(synchronize_session=False)
    )

    await db.commit()
    await db.refresh(new_user)
    logger.info("User %s registered", new_user.id)

    access_token = create_access_token(
        data=principal_payload(new_user.email, new_user.id, new_user.role.value)
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=new_user.id,
        name=new_user.name,
        email=new_user.email,
        role=new_user.role,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """
    Login and return a JWT token.

    Accounts are looked up first, then drivers.
    """
    email = str(credentials.email).lower()

    result = await db.execute(select(User).where(func.lower(User.email) == email))
    user = result.scalar_one_or_none()

    if user:
        if not verify_password(credentials.password, user.hashed_password):
            raise _invalid_credentials()
        if not user.is_active:
            raise InsufficientPermissionsError("Inactive user account")
        principal_id, name, role = user.id, user.name, user.role
    else:
        result = await db.execute(select(Driver).where(func.lower(Driver.email) == email))
        driver = result.scalar_one_or_none()
        if not driver or not verify_password(credentials.password, driver.hashed_password):
            raise _invalid_credentials()
        if driver.deleted_at is not None:
            raise InsufficientPermissionsError("Driver account is archived")
        principal_id, name, role = driver.id, driver.name, UserRole.DRIVER

    access_token = create_access_token(data=principal_payload(email, principal_id, role.value))

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=principal_id,
        name=name,
        email=email,
        role=role,
    )


@router.get("/me", response_model=MeResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get the authenticated principal.

    Drivers also get their status and last reported position.
    """
    principal_id = current_user.get("user_id")

    if current_user.get("role") == UserRole.DRIVER.value:
        driver = await db.get(Driver, principal_id)
        return MeResponse(
            id=driver.id,
            name=driver.name,
            email=driver.email,
            role=UserRole.DRIVER,
            status=driver.status.value,
            current_lat=driver.current_lat,
            current_lng=driver.current_lng,
        )

    user = await db.get(User, principal_id)
    return MeResponse(id=user.id, name=user.name, email=user.email, role=user.role)


@router.post("/logout", response_model=LogoutResponse)
async def logout(current_user: dict = Depends(get_current_user)):
    """
    Revoke the presented token.
    """
    revoked = await revoke_token(current_user["token"], current_user["user_id"])
    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not revoke token, please retry"
        )
    return LogoutResponse(message="Logged out")
