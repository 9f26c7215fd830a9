from datetime import datetime, timedelta
from typing import Optional, Generic, TypeVar, Any
from fastapi import FastAPI, HTTPException, Request, status, Header, Depends
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic_settings import BaseSettings
from jose import JWTError, jwt
import uuid

# --- Configuration ---
class Settings(BaseSettings):
    MONGO_URL: str = "mongodb://mongodb:27017/?replicaSet=rs0"
    DATABASE_NAME: str = "flourever"
    SECRET_KEY: str = "secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ADMIN_TOKEN_EXPIRE_MINUTES: int = 60 * 8
    ADMIN_USERNAME: str = "flourever_admin"
    ADMIN_PASSWORD: str = "change-me"
    ENFORCE_STATUS_TRANSITIONS: bool = False
    RATE_LIMIT_ENABLED: bool = True

    class Config:
        env_file = ".env"

settings = Settings()

# --- Database ---
def get_db_client(url: str = settings.MONGO_URL) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(url)

# --- Authentication ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    if "jti" not in to_encode:
        to_encode.update({"jti": str(uuid.uuid4())})

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise UnauthorizedException("Could not validate credentials")

# --- Response Models ---
T = TypeVar("T")

class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    details: Optional[Any] = None

class HealthResponse(BaseModel):
    service: str
    status: str
    timestamp: datetime
    version: str
    database: Optional[str] = None


# --- Exceptions ---
class AppException(HTTPException):
    error_code = "SERVER_ERROR"

    def __init__(
        self,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        detail: str = "An error occurred",
        headers: Optional[dict] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        if error_code:
            self.error_code = error_code

class ValidationException(AppException):
    error_code = "VALIDATION_ERROR"

    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

class NotFoundException(AppException):
    error_code = "NOT_FOUND"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class UnauthorizedException(AppException):
    error_code = "AUTH_ERROR"

    def __init__(self, detail: str = "Unauthorized"):
         super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )

class ForbiddenException(AppException):
    error_code = "AUTH_ERROR"

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

class ConflictException(AppException):
    error_code = "INVALID_TRANSITION"

    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class TransactionException(AppException):
    """A database write inside a transaction failed and was rolled back."""
    error_code = "TRANSACTION_ERROR"

    def __init__(self, detail: str = "Server error during checkout."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

# --- Decorators/Dependencies ---
async def require_auth(request: Request, authorization: Optional[str] = Header(None)) -> dict:
    if not authorization:
        raise UnauthorizedException(detail="Missing authentication credentials")
    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param:
         raise UnauthorizedException(detail="Invalid authentication credentials")
    payload = verify_token(param)
    request.state.user_id = payload.get("sub")
    return payload

async def require_customer(payload: dict = Depends(require_auth)) -> dict:
    if payload.get("is_admin"):
        raise ForbiddenException("Customer account required")
    return payload

async def require_admin(payload: dict = Depends(require_auth)) -> dict:
    if not payload.get("is_admin"):
        raise ForbiddenException("Admin privileges required")
    return payload

# --- Exception Handlers ---
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    body = ErrorResponse(error=exc.detail, code=exc.error_code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True), headers=exc.headers)

def setup_exception_handlers(app: FastAPI):
    app.add_exception_handler(AppException, app_exception_handler)
