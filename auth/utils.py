import logging
import secrets
import smtplib
from datetime import datetime, timedelta, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional

from bson import ObjectId
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from config import settings
from database import get_db, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login-user")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login-user", auto_error=False)

ADMIN_ROLES = ("admin", "superadmin")


# --- Password Hashing Functions ---
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)


# --- JWT Token Creation ---
def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    to_encode = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def generate_otp() -> str:
    return f"{secrets.randbelow(10**6):06d}"


def otp_expiry() -> datetime:
    return utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)


def public_account(account: Dict) -> Dict:
    return {
        "_id": str(account["_id"]),
        "username": account["username"],
        "email": account["email"],
        "role": account.get("role", "user"),
        "is_verified": account.get("is_verified", False),
    }


def with_token(account: Dict) -> Dict:
    data = public_account(account)
    data["token"] = create_access_token(str(account["_id"]))
    return data


# --- User Authentication Functions ---
def _resolve_account(token: str, db: Database) -> Optional[Dict]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        subject: str = payload.get("sub")
    except JWTError:
        return None
    if subject is None or not ObjectId.is_valid(subject):
        return None
    # users first, then the admin accounts
    account = db.users.find_one({"_id": ObjectId(subject)})
    if account is None:
        account = db.admins.find_one({"_id": ObjectId(subject)})
    return account


def get_current_user(token: str = Depends(oauth2_scheme), db: Database = Depends(get_db)):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authorized, token failed",
        headers={"WWW-Authenticate": "Bearer"},
    )
    account = _resolve_account(token, db)
    if account is None:
        raise credentials_exception
    return account


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme), db: Database = Depends(get_db)):
    """Guest-friendly variant: a missing or bad token just means 'no user'."""
    if not token:
        return None
    return _resolve_account(token, db)


def get_admin_user(user: Dict = Depends(get_current_user)):
    if user.get("role") not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user


def get_superadmin_user(user: Dict = Depends(get_current_user)):
    if user.get("role") != "superadmin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Superadmin role required")
    return user


# --- Email Sending Functions ---
def send_email(recipients: List[str], subject: str, html: str, bcc: bool = False) -> bool:
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.EMAIL_FROM
    if not bcc:
        message["To"] = ", ".join(recipients)
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM, recipients, message.as_string())
        logger.info("Mail '%s' sent to %d recipient(s).", subject, len(recipients))
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Failed to send mail '%s': %s", subject, e)
        return False


def send_otp_email(email: str, otp: str, admin: bool = False) -> bool:
    title = "Your BZ Cart Admin Verification Code" if admin else "OTP verification"
    html = f"""
    <html><body>
        <h2>Verification Code</h2>
        <p>Use the following OTP to complete your {'admin verification' if admin else 'registration'} process:</p>
        <p style="font-size: 32px; font-weight: bold; letter-spacing: 4px;">{otp}</p>
        <p>This OTP is valid for {settings.OTP_EXPIRE_MINUTES} minutes. Do not share it with anyone.</p>
        <p>If you didn't request this, please ignore this email or contact support.</p>
    </body></html>
    """
    return send_email([email], title, html)


def send_discount_email(email: str, code: str, expires_at: datetime) -> bool:
    html = f"""
    <html><body>
        <h2>Welcome to BZ Cart!</h2>
        <p>Thanks for subscribing. Here is your one-time {settings.DISCOUNT_PERCENT}% discount code:</p>
        <p style="font-size: 28px; font-weight: bold; letter-spacing: 4px;">{code}</p>
        <p>Use it at checkout with this email address before {expires_at:%d %b %Y}.</p>
    </body></html>
    """
    return send_email([email], "Your BZ Cart discount code", html)
