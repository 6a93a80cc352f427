from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from rms.common import auth
from rms.common.config import get_settings
from rms.common.database import Base, engine, get_db
from rms.common.dependencies import get_current_user, require_admin
from rms.common.errors import register_error_handlers
from rms.common.logging_middleware import add_audit_middleware
from rms.common.models import User
from rms.common.rate_limit import apply_rate_limiter, limiter
from rms.common.schemas import LoginRequest, Token, UserRead, UserRegister

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Users Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "users")
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/auth/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(request: Request, user_in: UserRegister, db: Session = Depends(get_db)) -> User:
    if db.query(User).filter(User.email == user_in.email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User with this email already exists")

    user = User(
        name=user_in.name,
        email=user_in.email,
        role=user_in.role,
        hashed_password=auth.get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@app.post("/auth/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, response: Response, credentials: LoginRequest, db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    access_token = auth.create_user_token(user)
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=access_token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
    )
    return Token(access_token=access_token, user=UserRead.model_validate(user))


@app.post("/auth/logout")
def logout(response: Response) -> dict[str, str]:
    response.delete_cookie(settings.auth_cookie_name)
    return {"message": "Logged out successfully"}


@app.get("/auth/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)) -> User:
    return current_user


@app.get("/users", response_model=list[UserRead])
@limiter.limit("20/minute")
def list_users(request: Request, _: User = Depends(require_admin), db: Session = Depends(get_db)) -> list[User]:
    return db.query(User).order_by(User.name).all()
