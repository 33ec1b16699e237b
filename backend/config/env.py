import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# =====================================================
# ENV
# =====================================================
ENV = os.getenv("ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ENABLE_WORKERS = _flag("ENABLE_WORKERS")

# =====================================================
# DATABASE
# =====================================================
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "chariot")
# multi-document transactions need a replica set
MONGO_USE_TRANSACTIONS = _flag("MONGO_USE_TRANSACTIONS")

# =====================================================
# JWT
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_DAYS = int(os.getenv("ACCESS_TOKEN_DAYS", 7))

# =====================================================
# SECRETS
# =====================================================
OTP_SECRET = os.getenv("OTP_SECRET")

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")

# --------------------------------------------------
# OBJECT STORAGE
# --------------------------------------------------
STORAGE_PROVIDER = os.getenv("STORAGE_PROVIDER", "s3").lower()
STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", 10))

AWS_REGION = os.getenv("AWS_REGION", "eu-north-1")
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
AWS_S3_ENDPOINT_URL = os.getenv("AWS_S3_ENDPOINT_URL")
AWS_S3_PUBLIC_BUCKET = os.getenv("AWS_S3_PUBLIC_BUCKET") or os.getenv("AWS_S3_BUCKET")
AWS_S3_PRIVATE_BUCKET = os.getenv("AWS_S3_PRIVATE_BUCKET")

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

# purchase | authenticated
DOWNLOAD_ENTITLEMENT_POLICY = os.getenv("DOWNLOAD_ENTITLEMENT_POLICY", "purchase").lower()

# --------------------------------------------------
# NOTIFICATIONS
# --------------------------------------------------
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Chariot Marketplace <no-reply@chariot.market>")
ADMIN_NOTIFICATION_EMAILS = [
    e.strip() for e in os.getenv("ADMIN_NOTIFICATION_EMAILS", "").split(",") if e.strip()
]
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", 5))


def validate_production_env() -> None:
    if (ENV or "").lower() != "production":
        return

    required = {
        "JWT_SECRET": JWT_SECRET,
        "OTP_SECRET": OTP_SECRET,
        "MONGODB_URI": MONGO_URI,
        "RESEND_API_KEY": RESEND_API_KEY,
    }

    if STORAGE_PROVIDER == "cloudinary":
        required.update({
            "CLOUDINARY_CLOUD_NAME": CLOUDINARY_CLOUD_NAME,
            "CLOUDINARY_API_KEY": CLOUDINARY_API_KEY,
            "CLOUDINARY_API_SECRET": CLOUDINARY_API_SECRET,
        })
    else:
        required.update({
            "AWS_ACCESS_KEY_ID": AWS_ACCESS_KEY_ID,
            "AWS_SECRET_ACCESS_KEY": AWS_SECRET_ACCESS_KEY,
            "AWS_S3_PUBLIC_BUCKET": AWS_S3_PUBLIC_BUCKET,
            "AWS_S3_PRIVATE_BUCKET": AWS_S3_PRIVATE_BUCKET,
        })

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")
