import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "BZ Cart API")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Database ---
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "bzcart")


def build_mongo_uri() -> str:
    """
    MONGO_URI wins when set. Otherwise an Atlas SRV URI is assembled from
    MONGO_USER / MONGO_PASSWORD / MONGO_CLUSTER_URL, escaping the credentials.
    """
    uri = os.getenv("MONGO_URI")
    if uri:
        return uri
    user = os.getenv("MONGO_USER")
    password = os.getenv("MONGO_PASSWORD")
    cluster = os.getenv("MONGO_CLUSTER_URL")
    if not (user and password and cluster):
        return "mongodb://localhost:27017"
    return (
        f"mongodb+srv://{quote_plus(user)}:{quote_plus(password)}@{cluster}"
        f"/?retryWrites=true&w=majority&appName={MONGO_DB_NAME}"
    )


MONGO_URI = build_mongo_uri()

# --- Security & JWT ---
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changeme")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "15"))
OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", "10"))

# --- Mail ---
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
EMAIL_FROM = os.getenv("EMAIL_FROM", "info@bzcart.store")

# --- CORS ---
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:5173,http://localhost:5174,https://bzcart.store,https://www.bzcart.store",
    ).split(",")
    if origin.strip()
]

# --- Analytics ---
GEOIP_URL = os.getenv("GEOIP_URL", "https://ipapi.co/{ip}/json/")
GEOIP_TIMEOUT = float(os.getenv("GEOIP_TIMEOUT", "2.0"))
ENRICHMENT_ATTEMPTS = int(os.getenv("ENRICHMENT_ATTEMPTS", "3"))

# --- Discounts ---
DISCOUNT_PERCENT = int(os.getenv("DISCOUNT_PERCENT", "10"))
DISCOUNT_CODE_TTL_DAYS = int(os.getenv("DISCOUNT_CODE_TTL_DAYS", "7"))
