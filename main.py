from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import Field
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth_service
import database
from chatbot_service import ChatbotService, get_chatbot_service
from config import settings
from database import ensure_indexes, get_db, ping
from email_service import EmailService, get_email_service
from exceptions import EmailDeliveryError, HomieDoError, ValidationError
from logging_config import get_logger
from middleware import RequestLoggingMiddleware
from schemas import DocumentModel, public_user
from security import get_current_user
from subject_routes import router as subject_router
from subject_routes_v2 import router as subject_router_v2
from subject_service import backfill_entity_ids

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            await run_in_threadpool(ensure_indexes, database.db)
            backfilled = await run_in_threadpool(backfill_entity_ids, database.db)
            if backfilled:
                logger.info(f"Stored ids for legacy entries in {backfilled} subjects")
        except PyMongoError as e:
            logger.warning(f"Database startup tasks failed: {e}")
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)


# ---------------------------
# Error handlers
# ---------------------------

@app.exception_handler(HomieDoError)
async def homiedo_error_handler(request: Request, exc: HomieDoError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", [])[1:]) or None
    message = f"{field}: {first.get('msg')}" if field else "Invalid request body"
    return JSONResponse(
        status_code=400,
        content={"message": message, "code": "VALIDATION_ERROR", "details": {"errors": errors}},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail, "code": "HTTP_ERROR", "details": {}},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "message": "Something went wrong!",
            "error": str(exc) if settings.is_development else "Server error",
        },
    )


# ---------------------------
# Request models
# ---------------------------

# Fields are optional so missing values get the friendly 400 messages from auth_service
class RegisterRequest(DocumentModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(DocumentModel):
    email: Optional[str] = None
    password: Optional[str] = None


class GoogleAuthRequest(DocumentModel):
    id_token: Optional[str] = None


class ForgotPasswordRequest(DocumentModel):
    email: Optional[str] = None


class ResetPasswordRequest(DocumentModel):
    password: Optional[str] = None


class ChatbotRequest(DocumentModel):
    question: Optional[str] = None
    file_url: Optional[str] = Field(None, description="URL of the course file to ask about")


def auth_response(message: str, token: str, user: dict) -> dict:
    return {"message": message, "token": token, "user": public_user(user)}


# ---------------------------
# Health
# ---------------------------

@app.get("/")
def read_root():
    return {"message": "Homie-Do API"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "message": "Server is running",
        "database": "connected" if ping(database.db) else "unavailable",
    }


# ---------------------------
# Auth routes
# ---------------------------

async def send_welcome_email(email_service: EmailService, email: str, name: str) -> None:
    try:
        await email_service.send_welcome_email(email, name)
    except EmailDeliveryError as e:
        logger.warning(f"Welcome email to {email} not sent: {e.message}")


@app.post("/api/auth/register", status_code=201)
def register(req: RegisterRequest, background_tasks: BackgroundTasks,
             db: Database = Depends(get_db), email_service: EmailService = Depends(get_email_service)):
    token, user = auth_service.register(db, req.name, req.email, req.password)
    if email_service.is_configured:
        background_tasks.add_task(send_welcome_email, email_service, user["email"], user["name"])
    return auth_response("User registered successfully", token, user)


@app.post("/api/auth/login")
def login(req: LoginRequest, db: Database = Depends(get_db)):
    token, user = auth_service.login(db, req.email, req.password)
    return auth_response("Login successful", token, user)


@app.post("/api/auth/google")
def google_login(req: GoogleAuthRequest, db: Database = Depends(get_db),
                 verifier: auth_service.GoogleTokenVerifier = Depends(auth_service.get_google_verifier)):
    token, user = auth_service.google_auth(db, req.id_token, verifier)
    return auth_response("Google authentication successful", token, user)


@app.post("/api/auth/forgot-password")
async def forgot_password(req: ForgotPasswordRequest, db: Database = Depends(get_db),
                          email_service: EmailService = Depends(get_email_service)):
    raw_token, user = await run_in_threadpool(auth_service.forgot_password, db, req.email)
    try:
        await email_service.send_password_reset_email(user["email"], auth_service.build_reset_url(raw_token))
    except EmailDeliveryError as e:
        # An unsent token must not stay redeemable
        await run_in_threadpool(auth_service.clear_reset_token, db, user["_id"])
        raise EmailDeliveryError() from e
    return {"message": "Password reset email sent successfully"}


@app.post("/api/auth/reset-password/{token}")
def reset_password(token: str, req: ResetPasswordRequest, db: Database = Depends(get_db)):
    new_token, user = auth_service.reset_password(db, token, req.password)
    return auth_response("Password reset successful", new_token, user)


@app.get("/api/auth/profile")
def profile(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"user": public_user(auth_service.get_profile(db, user["id"]))}


# ---------------------------
# AI Chatbot
# ---------------------------

@app.post("/api/chatbot/ask")
def ask_chatbot(req: ChatbotRequest, user: dict = Depends(get_current_user),
                chatbot: ChatbotService = Depends(get_chatbot_service)):
    if not req.question:
        raise ValidationError("Question is required", field="question")
    if not req.file_url:
        raise ValidationError("File URL is required", field="fileUrl")

    chatbot.log_interaction(user["id"], req.question, req.file_url)
    return chatbot.ask(req.question, req.file_url, user["id"])


# ---------------------------
# Subjects
# ---------------------------

app.include_router(subject_router)
app.include_router(subject_router_v2)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
