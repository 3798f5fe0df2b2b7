from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, EmailStr

from app.db.database import get_db
from app.users import crud
from app.core.auth import create_access_token, hash_password, verify_password
from app.db.models import User

router = APIRouter()


def create_jwt_for_user(user: User) -> str:
    return create_access_token(user_id=str(user.id), email=user.email)


# -------- EMAIL SIGNUP / LOGIN --------

class EmailRegisterRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    password: str


class EmailAuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/register", response_model=EmailAuthResponse)
async def register_email_user(
    payload: EmailRegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    # Check if email already exists
    existing_user = await crud.get_user_by_email(db, payload.email)
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A user with this email already exists.",
        )

    user = await crud.create_user(
        db,
        email=payload.email,
        name=payload.name,
        password_hash=hash_password(payload.password),
    )

    return EmailAuthResponse(access_token=create_jwt_for_user(user))


@router.post("/login", response_model=EmailAuthResponse)
async def login_email_user(
    form: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """
    OAuth2 password flow: ``username`` carries the e-mail address.
    """
    user = await crud.get_user_by_email(db, form.username)
    if not user or not user.is_active or not verify_password(form.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return EmailAuthResponse(access_token=create_jwt_for_user(user))
