import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

# Local imports
from account_service import crud, mailer, schemas
from account_service.auth import (
    clear_session_cookie,
    get_current_user,
    set_session_cookie,
)
from account_service.db import engine, Base, get_db
from account_service.errors import (
    AccountError,
    DeliveryFailed,
    Duplicate,
    InvalidInput,
    Mismatch,
    PolicyViolation,
    Unauthenticated,
)
from account_service.models import User
from account_service.utils import (
    get_password_hash,
    pwd_context,
    validate_password_policy,
    verify_password,
)

# Logger configuration
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Create tables if they do not exist yet
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified/created.")
except Exception as e:
    logger.error(f"Error initializing database: {e}", exc_info=True)


app = FastAPI(
    title="Account Service",
    description="Handles signup with email verification, cookie sessions and account management.",
    version="1.0.0"
)

# --- User-facing messages ---
MSG_INVALID_INPUT = "입력값이 유효하지 않습니다."
MSG_SEND_OK = "전송 성공"
MSG_SEND_FAILED = "전송 실패"
MSG_CODE_MISMATCH = "인증번호가 일치하지 않습니다."
MSG_CODE_EXPIRED = "인증번호가 만료되었습니다. 다시 요청해주세요."
MSG_DUPLICATE_EMAIL = crud.MSG_DUPLICATE_EMAIL
MSG_PASSWORD_FORMAT = "비밀번호 형식이 올바르지 않습니다."
MSG_PASSWORD_CONFIRM = "비밀번호가 일치하지 않습니다."
MSG_SIGNUP_OK = "회원 가입에 성공하였습니다."
MSG_LOGIN_FAILED = "email 또는 비밀번호를 확인해주세요."
MSG_LOGIN_OK = "log-in 되었습니다."
MSG_LOGOUT_OK = "log-out 되었습니다."
MSG_REFRESH_OK = "로그인이 연장되었습니다."
MSG_NOT_OWNER = "본인의 계정만 접근할 수 있습니다."
MSG_NEW_PASSWORD_CONFIRM = "변경된 비밀번호가 일치하지 않습니다."
MSG_NEW_PASSWORD_FORMAT = "변경된 비밀번호 형식이 올바르지 않습니다."
MSG_UPDATE_OK = "사용자 정보 수정에 성공하였습니다."
MSG_DELETE_OK = "사용자 정보 삭제에 성공하였습니다."

# wrong guesses allowed before a pending verification code is discarded
MAX_VERIFICATION_ATTEMPTS = 5

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "account_requests_total",
    "Total requests processed by Account Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "account_request_latency_seconds",
    "Request latency in seconds for Account Service",
    ["endpoint"]
)
SIGNUP_COUNT = Counter("account_signups_total", "Accounts created")
LOGIN_COUNT = Counter("account_logins_total", "Login attempts", ["outcome"])


# --- Metrics middleware ---
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start_time = time.time()
    response = None
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as exc:
        logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
        response = JSONResponse(status_code=500, content={"message": "Internal Server Error"})
    finally:
        latency = time.time() - start_time
        endpoint = request.url.path
        final_status_code = getattr(response, 'status_code', status_code)

        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Error handlers ---
@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError):
    logger.warning(f"{request.method} {request.url.path} rejected with {exc.status_code}: {type(exc).__name__}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"{request.method} {request.url.path} rejected: malformed request body.")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": MSG_INVALID_INPUT})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)}, headers=exc.headers)


# --- Health and metrics endpoints ---
@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["Monitoring"])
def health_check():
    return {"status": "ok", "service": "account_service"}


# --- Helpers ---

def _utcnow() -> datetime:
    # verification expiries are stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def check_verification_code(db: Session, email: str, code_input: str) -> None:
    """
    Raises Mismatch unless a live code was issued for the email and matches the input.
    Each wrong guess counts against the code; too many discard it.
    """
    entry = crud.get_verification_code(db, email)
    if entry is None:
        logger.warning(f"Signup failed: no verification code issued for {email}.")
        raise Mismatch(MSG_CODE_MISMATCH)

    if entry.expires_at < _utcnow():
        logger.warning(f"Signup failed: verification code expired for {email}.")
        crud.delete_verification_code(db, email)
        raise Mismatch(MSG_CODE_EXPIRED)

    if not secrets.compare_digest(entry.code.encode(), code_input.encode()):
        logger.warning(f"Signup failed: wrong verification code for {email}.")
        if crud.record_failed_attempt(db, entry) >= MAX_VERIFICATION_ATTEMPTS:
            logger.warning(f"Verification code for {email} discarded after {MAX_VERIFICATION_ATTEMPTS} wrong guesses.")
            crud.delete_verification_code(db, email)
            raise Mismatch(MSG_CODE_EXPIRED)
        raise Mismatch(MSG_CODE_MISMATCH)


def ensure_owner(user_id: int, current_user: User) -> None:
    if user_id != current_user.id:
        logger.warning(f"User {current_user.id} tried to access account {user_id}.")
        raise Unauthenticated(MSG_NOT_OWNER)


# --- Signup ---

@app.post("/signup/verification-code", response_model=schemas.MessageResponse, tags=["Signup"])
async def send_verification_code(body: schemas.VerificationCodeRequest, db: Session = Depends(get_db)):
    """
    Generates a verification code for the email, stores it with an expiry and
    sends it to the address. A new request replaces the pending code.
    """
    if not body.email:
        raise InvalidInput(MSG_INVALID_INPUT)

    logger.info(f"Verification code requested for email: {body.email}")
    if crud.get_user_by_email(db, body.email):
        logger.warning(f"Verification code refused: email {body.email} already exists.")
        raise Duplicate(MSG_DUPLICATE_EMAIL)

    code = mailer.generate_verification_code()
    expires_at = _utcnow() + timedelta(minutes=mailer.VERIFICATION_CODE_EXPIRATION_MINUTES)
    crud.save_verification_code(db, body.email, code, expires_at)

    if not await mailer.send_verification_email(body.email, code):
        crud.delete_verification_code(db, body.email)
        raise DeliveryFailed(MSG_SEND_FAILED)

    return {"message": MSG_SEND_OK}


@app.post("/signup", response_model=schemas.MessageResponse, status_code=status.HTTP_201_CREATED, tags=["Signup"])
def signup(body: schemas.SignupRequest, db: Session = Depends(get_db)):
    """
    Creates an account once the emailed code, the uniqueness of the email and
    the password rules have all been checked, in that order.
    """
    if not body.email or not body.verify_number_input or not body.password or not body.password_confirm:
        raise InvalidInput(MSG_INVALID_INPUT)

    logger.info(f"Signup attempt for email: {body.email}")
    check_verification_code(db, body.email, body.verify_number_input)

    if crud.get_user_by_email(db, body.email):
        logger.warning(f"Signup failed: email {body.email} already exists.")
        raise Duplicate(MSG_DUPLICATE_EMAIL)

    if not validate_password_policy(body.password):
        raise PolicyViolation(MSG_PASSWORD_FORMAT)

    if body.password != body.password_confirm:
        raise Mismatch(MSG_PASSWORD_CONFIRM)

    crud.create_user(db, body.email, get_password_hash(body.password))
    crud.delete_verification_code(db, body.email)
    SIGNUP_COUNT.inc()
    return {"message": MSG_SIGNUP_OK}


# --- Sessions ---

@app.post("/login", response_model=schemas.MessageResponse, tags=["Authentication"])
def login(body: schemas.LoginRequest, response: Response, db: Session = Depends(get_db)):
    """Checks the credentials and stores a signed session token in the cookie."""
    if not body.email or not body.password:
        raise InvalidInput(MSG_INVALID_INPUT)

    logger.info(f"Login attempt for user: {body.email}")
    user = crud.get_user_by_email(db, body.email)

    if user is None:
        # keep the response time close to a real password check
        pwd_context.dummy_verify()
        password_ok = False
    else:
        password_ok = verify_password(body.password, user.hashed_password)

    if not password_ok:
        LOGIN_COUNT.labels(outcome="rejected").inc()
        logger.warning(f"Login failed for user: {body.email}")
        raise Mismatch(MSG_LOGIN_FAILED)

    set_session_cookie(response, user)
    LOGIN_COUNT.labels(outcome="success").inc()
    logger.info(f"Login successful for user_id: {user.id}")
    return {"message": MSG_LOGIN_OK}


@app.post("/logout", response_model=schemas.MessageResponse, tags=["Authentication"])
def logout(response: Response, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Clears the cookie and revokes every token issued to the user so far."""
    crud.bump_session_version(db, current_user)
    clear_session_cookie(response)
    logger.info(f"Logout for user_id: {current_user.id}")
    return {"message": MSG_LOGOUT_OK}


@app.post("/token/refresh", response_model=schemas.MessageResponse, tags=["Authentication"])
def refresh_token(response: Response, current_user: User = Depends(get_current_user)):
    """Re-issues the session cookie with a new expiry."""
    set_session_cookie(response, current_user)
    return {"message": MSG_REFRESH_OK}


# --- Users ---

@app.get("/users/{user_id}", response_model=schemas.UserDataResponse, tags=["Users"])
def get_user(user_id: int, current_user: User = Depends(get_current_user)):
    """Returns the profile of the authenticated user."""
    ensure_owner(user_id, current_user)
    return {"data": schemas.UserResponse.model_validate(current_user)}


@app.put("/users/{user_id}", response_model=schemas.MessageResponse, tags=["Users"])
def change_password(
    user_id: int,
    body: schemas.PasswordChangeRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Changes the password after checking the current one.
    Other sessions are revoked; this client receives a fresh cookie.
    """
    ensure_owner(user_id, current_user)
    if not body.password or not body.new_password or not body.new_password_confirm:
        raise InvalidInput(MSG_INVALID_INPUT)

    if not verify_password(body.password, current_user.hashed_password):
        logger.warning(f"Password change failed for user_id {current_user.id}: wrong current password.")
        raise Mismatch(MSG_PASSWORD_CONFIRM)

    if body.new_password != body.new_password_confirm:
        raise Mismatch(MSG_NEW_PASSWORD_CONFIRM)

    if not validate_password_policy(body.new_password):
        raise PolicyViolation(MSG_NEW_PASSWORD_FORMAT)

    user = crud.update_user_password(db, current_user, get_password_hash(body.new_password))
    set_session_cookie(response, user)
    logger.info(f"Password changed for user_id: {user.id}")
    return {"message": MSG_UPDATE_OK}


@app.delete("/users/{user_id}", response_model=schemas.MessageResponse, tags=["Users"])
def delete_account(
    user_id: int,
    body: schemas.AccountDeleteRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Deletes the account after re-checking its email and password."""
    ensure_owner(user_id, current_user)
    if not body.email or not body.password:
        raise InvalidInput(MSG_INVALID_INPUT)

    if body.email != current_user.email or not verify_password(body.password, current_user.hashed_password):
        logger.warning(f"Account deletion failed for user_id {current_user.id}: credentials do not match.")
        raise Mismatch(MSG_LOGIN_FAILED)

    deleted_id = current_user.id
    crud.delete_user(db, current_user)
    clear_session_cookie(response)
    logger.info(f"Account deleted: user_id {deleted_id}")
    return {"message": MSG_DELETE_OK}
