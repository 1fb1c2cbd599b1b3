"""
utils/constants.py

Purpose: Centralized static content

- User-facing error and status messages
- Plan identifiers and display names
- Reusable ids and enums

(Prevents hardcoding across the codebase)
"""

# ============================================================
# AUTH MESSAGES
# ============================================================

MSG_UNAUTHORIZED = "Unauthorized"
MSG_ADMIN_REQUIRED = "Forbidden - Admin access required"
MSG_INVALID_CREDENTIALS = "Invalid email or password"
MSG_EMAIL_PASSWORD_REQUIRED = "Email and password are required"
MSG_INVALID_EMAIL = "Invalid email format"
MSG_PASSWORD_TOO_SHORT = "Password must be at least 8 characters"
MSG_INVALID_PHONE = "Invalid phone number format"
MSG_EMAIL_TAKEN = "Email already registered"
MSG_PHONE_TAKEN = "Phone number already registered"
MSG_ACCOUNT_SUSPENDED = "Account suspended. Please contact support."
MSG_IP_LOCKED = "Too many login attempts from this location. Please try again later."
MSG_EMAIL_LOCKED = "Account temporarily locked due to too many failed attempts. Please try again later."
MSG_SIGNUP_LIMIT = "Too many signup attempts. Please try again later."

# ============================================================
# OTP MESSAGES
# ============================================================

MSG_OTP_COOLDOWN = "Please wait {seconds} seconds before requesting another OTP"
MSG_OTP_HOURLY_LIMIT = "Too many OTP requests. Please try again later."
MSG_OTP_REQUIRED = "OTP is required"
MSG_OTP_NOT_FOUND = "No OTP found. Please request a new one."
MSG_OTP_EXPIRED = "OTP has expired. Please request a new one."
MSG_OTP_INVALID = "Invalid OTP"
MSG_NO_PHONE = "No phone number associated with this account"

MSG_RESET_SENT = "If an account with that email exists, a reset link has been sent."
MSG_RESET_INVALID = "Invalid reset request"
MSG_RESET_NOT_FOUND = "No reset request found. Please request a new one."
MSG_RESET_EXPIRED = "Reset code has expired. Please request a new one."
MSG_RESET_CODE_INVALID = "Invalid reset code"

MSG_DELETION_NOT_FOUND = "No deletion request found. Please request a new code."
MSG_DELETION_EXPIRED = "Verification code has expired. Please request a new one."
MSG_DELETION_INVALID = "Invalid verification code"

# ============================================================
# PROFILE / PAYMENTS / SYNC
# ============================================================

MSG_NO_FIELDS = "No fields to update"
MSG_CURRENT_PASSWORD_WRONG = "Current password is incorrect"
MSG_PENDING_EXISTS = "You already have a pending request for this plan"
MSG_ALREADY_PROCESSED = "This request has already been processed"
MSG_SYNC_IN_PROGRESS = "Sync already in progress"
MSG_SYNC_COOLDOWN = "Please wait {seconds} seconds before syncing again"
MSG_SYNC_FORBIDDEN = "You do not have permission to enable business sync. Please contact admin."
MSG_NO_WEBHOOK_TARGET = "No active webhooks configured for this event type"

# ============================================================
# OTP TYPES
# ============================================================

OTP_TYPE_EMAIL = "email"
OTP_TYPE_PHONE = "phone"
OTP_TYPE_PASSWORD_RESET = "password_reset"

# ============================================================
# PLANS
# ============================================================

PLAN_NONE = "none"
PLAN_TRIAL = "trial"
PLAN_FREE = "free"
PLAN_STARTER = "starter"
PLAN_PROFESSIONAL = "professional"
PLAN_BUSINESS = "business"
PLAN_LIFETIME = "lifetime"

PAID_PLANS = (PLAN_STARTER, PLAN_PROFESSIONAL, PLAN_BUSINESS)
ALL_PLANS = (PLAN_NONE, PLAN_TRIAL, PLAN_FREE) + PAID_PLANS + (PLAN_LIFETIME,)

PLAN_NAMES = {
    "free-trial": "Free Trial",
    "starter": "Starter",
    "professional": "Professional",
    "business": "Business",
    "lifetime": "Lifetime",
}

PAYMENT_CURRENCY = "BDT"

# ============================================================
# MISC
# ============================================================

SITE_SETTINGS_ID = "00000000-0000-0000-0000-000000000001"
DEFAULT_COMPANY_NAME = "AutoFloy"
ROLE_ADMIN = "admin"
ROLE_USER = "user"
USER_STATUS_ACTIVE = "active"
USER_STATUS_SUSPENDED = "suspended"
