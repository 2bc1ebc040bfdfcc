import re
import secrets
from typing import Any, Dict, Optional, Tuple

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings, settings
from database import to_object_id
from exceptions import (
    AuthenticationError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidResetTokenError,
    UserNotFoundError,
    ValidationError,
)
from logging_config import get_logger
from schemas import User, now_utc
from security import (
    create_access_token,
    generate_reset_token,
    get_password_hash,
    hash_reset_token,
    utcnow_naive,
    verify_password,
)

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def issue_token(user: Dict[str, Any]) -> str:
    return create_access_token(str(user["_id"]), user["email"])


def find_user_by_email(db: Database, email: str) -> Optional[Dict[str, Any]]:
    return db["user"].find_one({"email": normalize_email(email)})


def find_user_by_google_id(db: Database, google_id: str) -> Optional[Dict[str, Any]]:
    return db["user"].find_one({"googleId": google_id})


def create_user(db: Database, name: str, email: str, password: str,
                google_id: Optional[str] = None, profile_picture: Optional[str] = None) -> Dict[str, Any]:
    user = User(
        name=name.strip(),
        email=normalize_email(email),
        password=get_password_hash(password),
        google_id=google_id,
        profile_picture=profile_picture,
    )
    doc = user.model_dump(by_alias=True)
    timestamp = now_utc()
    doc["createdAt"] = timestamp
    doc["updatedAt"] = timestamp
    try:
        result = db["user"].insert_one(doc)
    except DuplicateKeyError:
        raise DuplicateEmailError(doc["email"])
    doc["_id"] = result.inserted_id
    return doc


# ---------------------------
# Registration & login
# ---------------------------

def register(db: Database, name: Optional[str], email: Optional[str],
             password: Optional[str]) -> Tuple[str, Dict[str, Any]]:
    if not name or not email or not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("All fields are required and password must be at least 6 characters")
    if not EMAIL_RE.match(email.strip()):
        raise ValidationError("Invalid email format", field="email")
    if find_user_by_email(db, email):
        raise DuplicateEmailError(normalize_email(email))

    user = create_user(db, name, email, password)
    logger.info(f"Registered user {user['_id']}")
    return issue_token(user), user


def login(db: Database, email: Optional[str], password: Optional[str]) -> Tuple[str, Dict[str, Any]]:
    if not email or not password:
        raise ValidationError("Email and password are required")
    user = find_user_by_email(db, email)
    if not user or not verify_password(password, user.get("password")):
        logger.warning("Login failed: invalid credentials")
        raise InvalidCredentialsError()
    return issue_token(user), user


def get_profile(db: Database, user_id: str) -> Dict[str, Any]:
    user = db["user"].find_one({"_id": to_object_id(user_id)})
    if not user:
        raise UserNotFoundError(user_id)
    return user


# ---------------------------
# Google sign-in
# ---------------------------

class GoogleTokenVerifier:
    """Verifies Google ID tokens from the frontend Sign-In button"""

    def __init__(self, client_id: str):
        self.client_id = client_id

    def verify(self, token: str) -> Dict[str, Any]:
        try:
            idinfo = google_id_token.verify_oauth2_token(token, google_requests.Request(), self.client_id)
        except ValueError as e:
            logger.warning(f"[GoogleAuth] Invalid ID token: {e}")
            raise AuthenticationError(f"Invalid Google token: {e}", code="INVALID_GOOGLE_TOKEN")
        if idinfo.get("iss") not in GOOGLE_ISSUERS:
            raise AuthenticationError("Invalid Google token: wrong issuer", code="INVALID_GOOGLE_TOKEN")
        return idinfo


def get_google_verifier() -> GoogleTokenVerifier:
    return GoogleTokenVerifier(settings.GOOGLE_CLIENT_ID)


def google_auth(db: Database, id_token: Optional[str],
                verifier: GoogleTokenVerifier) -> Tuple[str, Dict[str, Any]]:
    """Find or create the user behind a Google ID token and link the Google id"""
    if not id_token:
        raise ValidationError("Google ID token is required", field="idToken")

    google_user = verifier.verify(id_token)
    email = google_user.get("email")
    google_id = google_user.get("sub")
    if not email or not google_id:
        raise AuthenticationError("Invalid Google token: missing email", code="INVALID_GOOGLE_TOKEN")

    user = find_user_by_email(db, email) or find_user_by_google_id(db, google_id)
    if user is None:
        user = create_user(
            db,
            name=google_user.get("name") or email.split("@")[0],
            email=email,
            password=secrets.token_urlsafe(16),
            google_id=google_id,
            profile_picture=google_user.get("picture"),
        )
        logger.info(f"Created user {user['_id']} from Google sign-in")
    elif not user.get("googleId"):
        db["user"].update_one(
            {"_id": user["_id"]},
            {"$set": {"googleId": google_id, "updatedAt": now_utc()}},
        )
        user["googleId"] = google_id
        logger.info(f"Linked Google account to user {user['_id']}")

    return issue_token(user), user


# ---------------------------
# Password reset
# ---------------------------

def forgot_password(db: Database, email: Optional[str]) -> Tuple[str, Dict[str, Any]]:
    """Store a fresh reset-token hash and return the raw token for the email"""
    if not email:
        raise ValidationError("Email is required", field="email")
    user = find_user_by_email(db, email)
    if not user:
        raise UserNotFoundError(normalize_email(email))

    raw_token, token_hash, expires_at = generate_reset_token()
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {
            "passwordResetToken": token_hash,
            "passwordResetExpires": expires_at,
            "updatedAt": now_utc(),
        }},
    )
    return raw_token, user


def clear_reset_token(db: Database, user_id: Any) -> None:
    db["user"].update_one(
        {"_id": user_id},
        {"$set": {"passwordResetToken": None, "passwordResetExpires": None}},
    )


def build_reset_url(token: str, config: Settings = settings) -> str:
    return f"{config.CLIENT_URL.rstrip('/')}/reset-password/{token}"


def reset_password(db: Database, token: str, password: Optional[str]) -> Tuple[str, Dict[str, Any]]:
    """
    Consume a reset token. The hash match, the expiry check and the
    password change happen in one update so a token works at most once.
    """
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Password is required and must be at least 6 characters long", field="password")

    user = db["user"].find_one_and_update(
        {"passwordResetToken": hash_reset_token(token), "passwordResetExpires": {"$gt": utcnow_naive()}},
        {"$set": {
            "password": get_password_hash(password),
            "passwordResetToken": None,
            "passwordResetExpires": None,
            "updatedAt": now_utc(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if user is None:
        raise InvalidResetTokenError()

    logger.info(f"Password reset for user {user['_id']}")
    return issue_token(user), user
