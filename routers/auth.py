import logging

from fastapi import APIRouter, Depends, HTTPException, status
import bcrypt

from core.auth import create_token
from core.store import MaterialStore, get_store
from models.schemas import RegisterRequest, LoginRequest, TokenResponse, User, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, store: MaterialStore = Depends(get_store)):
    username = body.username.lower()
    if await store.find_user(username):
        raise HTTPException(status_code=409, detail="Username already taken")

    pw_hash = bcrypt.hashpw(body.password.encode(), bcrypt.gensalt()).decode()
    user = User(username=username, password_hash=pw_hash, created_at=utcnow())
    await store.insert_user(user)
    logger.info("Registered learner %s", user.username)

    token = create_token(user.id, user.username)
    return TokenResponse(access_token=token, username=user.username)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, store: MaterialStore = Depends(get_store)):
    user = await store.find_user(body.username.lower())
    if not user or not bcrypt.checkpw(body.password.encode(), user.password_hash.encode()):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    token = create_token(user.id, user.username)
    return TokenResponse(access_token=token, username=user.username)
