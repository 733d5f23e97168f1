import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from quizcraft.core.security import verify_password, get_password_hash, create_access_token, get_current_user
from quizcraft.db.session import commit, get_db
from quizcraft.models.user import User
from quizcraft.schemas.auth import UserCreate, Token, User as UserSchema

router = APIRouter()
logger = logging.getLogger(__name__)

def _token_for(user: User) -> dict:
    access_token = create_access_token(data={"sub": str(user.id), "email": user.email})
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/signup", response_model=Token)
async def signup(user: UserCreate, db: AsyncSession = Depends(get_db)):
    email = user.email.strip().lower()
    # Check if user already exists
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    # Create new user
    db_user = User(
        email=email,
        hashed_password=get_password_hash(user.password)
    )
    db.add(db_user)
    await commit(db, "Failed to register the user")
    await db.refresh(db_user)
    logger.info(f"Registered user {db_user.id}")

    return _token_for(db_user)

@router.post("/login", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    # Find user
    result = await db.execute(select(User).where(User.email == form_data.username.strip().lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _token_for(user)

@router.get("/me", response_model=UserSchema)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
