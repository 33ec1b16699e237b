# backend/config/constants.py

# -----------------------------
# ACCOUNT CREDENTIALS
# -----------------------------

ACCOUNT_ID_PREFIX = "CHARIOT"
ACCOUNT_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ACCOUNT_ID_LENGTH = 5
ACCOUNT_ID_MAX_RETRIES = 10

PASSWORD_LENGTH = 12
PASSWORD_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
PASSWORD_LOWER = "abcdefghijklmnopqrstuvwxyz"
PASSWORD_DIGITS = "0123456789"
PASSWORD_SYMBOLS = "!@#$%^&*"
MIN_PASSWORD_LENGTH = 8

# -----------------------------
# ONE-TIME CODES
# -----------------------------

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
OTP_MAX_ATTEMPTS = 5  # wrong guesses before the code is discarded
OTP_RATE_LIMIT_REQUESTS = 3
OTP_RATE_LIMIT_WINDOW_SECONDS = 300  # 3 codes per 5 minutes

# -----------------------------
# MODERATION
# -----------------------------

BLACKLIST_DEFAULT_DAYS = 30
BLACKLIST_INACTIVE_REASON = "seller_blacklist"

# -----------------------------
# ASSET TICKETS
# -----------------------------

UPLOAD_TICKET_TTL_SECONDS = 60 * 60     # 1 hour
DOWNLOAD_TICKET_TTL_SECONDS = 60 * 5    # 5 minutes

IMAGE_CONTENT_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
}
DOCUMENT_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
}
ARCHIVE_CONTENT_TYPES = {
    "application/zip",
    "application/x-zip-compressed",
}

# realm -> content types accepted for upload tickets
REALM_CONTENT_TYPES = {
    "public": IMAGE_CONTENT_TYPES | DOCUMENT_CONTENT_TYPES,
    "private": ARCHIVE_CONTENT_TYPES | DOCUMENT_CONTENT_TYPES,
}

# -----------------------------
# PAGINATION
# -----------------------------

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50
