"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_LOCK_KEY_LENGTH = 120

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # Customer frontend dev server
    "http://localhost:5174",      # Agent/admin frontend dev server
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Appointment statuses
STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_QUEUED = "queued"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

APPOINTMENT_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_QUEUED,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)

# A slot is held by at most one appointment in one of these statuses
ACTIVE_HOLDER_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

# A customer may have at most one appointment per property in one of these statuses
OPEN_BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_QUEUED)

TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

# Actor roles
ROLE_CUSTOMER = "customer"
ROLE_AGENT = "agent"
ROLE_ADMIN = "admin"

# "staff" is what some callers send for agents
ROLE_ALIASES = {
    "staff": ROLE_AGENT,
}

# Property statuses
PROPERTY_STATUS_AVAILABLE = "available"

# Lock key prefixes for booking_locks rows
SLOT_LOCK_PREFIX = "slot"
CUSTOMER_PROPERTY_LOCK_PREFIX = "customer-property"
