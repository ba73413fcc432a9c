import os
import firebase_admin
import httpx
import logfire
from firebase_admin import auth, credentials, storage
from fastapi import HTTPException, Security, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db, ProfileDB

FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY")
FIREBASE_STORAGE_BUCKET = os.getenv("FIREBASE_STORAGE_BUCKET")
IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"


class AccountExistsError(Exception):
    """Raised when sign-up uses an e-mail that already has an account."""


class InvalidCredentialsError(Exception):
    """Raised when password sign-in is rejected."""


def get_firebase_app():
    """
    Initialize the Firebase Admin SDK on first use.
    Check if already initialized to avoid errors during reload.
    """
    if firebase_admin._apps:
        return firebase_admin.get_app()

    # Build Firebase credentials from individual environment variables
    firebase_config = {
        "type": os.getenv("FIREBASE_TYPE", "service_account"),
        "project_id": os.getenv("FIREBASE_PROJECT_ID"),
        "private_key_id": os.getenv("FIREBASE_PRIVATE_KEY_ID"),
        "private_key": os.getenv("FIREBASE_PRIVATE_KEY"),
        "client_email": os.getenv("FIREBASE_CLIENT_EMAIL"),
        "client_id": os.getenv("FIREBASE_CLIENT_ID"),
        "auth_uri": os.getenv("FIREBASE_AUTH_URI", "https://accounts.google.com/o/oauth2/auth"),
        "token_uri": os.getenv("FIREBASE_TOKEN_URI", "https://oauth2.googleapis.com/token"),
        "auth_provider_x509_cert_url": os.getenv("FIREBASE_AUTH_PROVIDER_CERT_URL", "https://www.googleapis.com/oauth2/v1/certs"),
        "client_x509_cert_url": os.getenv("FIREBASE_CLIENT_CERT_URL"),
    }

    # Check required fields
    required_fields = ["project_id", "private_key", "client_email"]
    missing_fields = [field for field in required_fields if not firebase_config.get(field)]

    if missing_fields:
        error_msg = f"Missing required Firebase environment variables: {', '.join([f'FIREBASE_{field.upper()}' for field in missing_fields])}"
        print(f"ERROR: {error_msg}")
        raise ValueError(error_msg)

    # Fix private key formatting (hosting providers often escape newlines)
    firebase_config["private_key"] = firebase_config["private_key"].replace("\\n", "\n")

    options = {"storageBucket": FIREBASE_STORAGE_BUCKET} if FIREBASE_STORAGE_BUCKET else None
    try:
        cred = credentials.Certificate(firebase_config)
        app = firebase_admin.initialize_app(cred, options)
        print(f"Firebase initialized for project: {firebase_config['project_id']}")
        return app
    except Exception as e:
        print(f"ERROR: Failed to initialize Firebase: {e}")
        raise ValueError(f"Failed to initialize Firebase: {e}")


# --- Account management ---

def verify_token(token: str) -> dict:
    get_firebase_app()
    return auth.verify_id_token(token)


def create_account(email: str, password: str, display_name: str) -> str:
    """Create a Firebase account and return its uid."""
    get_firebase_app()
    try:
        user = auth.create_user(email=email, password=password, display_name=display_name)
    except auth.EmailAlreadyExistsError:
        raise AccountExistsError(email)
    logfire.info("Firebase account created", uid=user.uid)
    return user.uid


def delete_account(uid: str) -> None:
    """Remove an account created during a registration that failed halfway."""
    get_firebase_app()
    auth.delete_user(uid)
    logfire.warn("Firebase account rolled back", uid=uid)


def revoke_sessions(uid: str) -> None:
    get_firebase_app()
    auth.revoke_refresh_tokens(uid)


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=15.0)


async def sign_in_with_password(email: str, password: str) -> dict:
    """
    Password sign-in through the Identity Toolkit REST API.
    Returns idToken, refreshToken, expiresIn and localId.
    """
    if not FIREBASE_WEB_API_KEY:
        raise HTTPException(status_code=500, detail="FIREBASE_WEB_API_KEY not configured")

    url = f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword"
    payload = {"email": email, "password": password, "returnSecureToken": True}
    async with _http_client() as client:
        response = await client.post(url, params={"key": FIREBASE_WEB_API_KEY}, json=payload)

    if response.status_code == 400:
        error = response.json().get("error", {}).get("message", "")
        logfire.info("Password sign-in rejected", reason=error)
        raise InvalidCredentialsError(error)
    if response.status_code != 200:
        logfire.error("Identity Toolkit error", status_code=response.status_code, body=response.text)
        raise HTTPException(status_code=502, detail="Serviço de autenticação indisponível")
    return response.json()


# --- Storage ---

def upload_public_file(path: str, data: bytes, content_type: str) -> str:
    """Upload bytes to the storage bucket and return the public URL."""
    get_firebase_app()
    blob = storage.bucket().blob(path)
    blob.upload_from_string(data, content_type=content_type)
    blob.make_public()
    logfire.info("Uploaded file to storage", path=path, size=len(data))
    return blob.public_url


# --- FastAPI dependencies ---

security = HTTPBearer()

async def get_current_user(credentials: HTTPAuthorizationCredentials = Security(security)) -> dict:
    """
    Verifies the Firebase ID token and returns the decoded token (user info).
    """
    token = credentials.credentials
    try:
        return verify_token(token)
    except Exception as e:
        logfire.warn("Auth error", error=str(e))
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def ensure_profile(db: Session, user: dict) -> ProfileDB:
    """Return the caller's profile, creating it from token claims on first access."""
    profile = db.query(ProfileDB).filter(ProfileDB.id == user["uid"]).first()
    if not profile:
        profile = ProfileDB(
            id=user["uid"],
            email=user.get("email"),
            full_name=user.get("name") or user.get("email"),
            role="tutor",
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
    return profile


async def get_current_profile(user: dict = Depends(get_current_user), db: Session = Depends(get_db)) -> ProfileDB:
    return ensure_profile(db, user)


async def require_tenant_member(profile: ProfileDB = Depends(get_current_profile)) -> ProfileDB:
    """Caller must belong to a tenant (admin or employee)."""
    if not profile.tenant_id or profile.role not in ("admin", "employee"):
        raise HTTPException(status_code=403, detail="Usuário não vinculado a uma empresa")
    return profile


async def require_tenant_admin(profile: ProfileDB = Depends(require_tenant_member)) -> ProfileDB:
    if profile.role != "admin":
        raise HTTPException(status_code=403, detail="Apenas administradores da empresa podem fazer isso")
    return profile


async def require_super_admin(profile: ProfileDB = Depends(get_current_profile)) -> ProfileDB:
    if profile.role != "super_admin":
        raise HTTPException(status_code=403, detail="Acesso restrito ao super administrador")
    return profile
