"""
utils/email_templates.py

Purpose: Transactional email bodies

- Each builder returns (subject, html)
- All interpolated values are HTML-escaped
"""

from html import escape
from typing import Tuple

from utils.constants import DEFAULT_COMPANY_NAME


def _layout(title: str, body: str, company_name: str = DEFAULT_COMPANY_NAME) -> str:
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; background:#f4f6fb; padding:24px;">
    <div style="max-width:560px; margin:0 auto; background:#ffffff; border-radius:12px; padding:32px;">
      <h2 style="color:#1f2937; margin-top:0;">{escape(title)}</h2>
      {body}
      <p style="color:#9ca3af; font-size:12px; margin-top:32px;">&copy; {escape(company_name)}</p>
    </div>
  </body>
</html>"""


def _code_block(code: str) -> str:
    return (
        '<div style="font-size:32px; letter-spacing:8px; font-weight:bold; '
        f'text-align:center; padding:16px; background:#eef2ff; border-radius:8px;">{escape(code)}</div>'
    )


def otp_email(otp: str, minutes: int = 10) -> Tuple[str, str]:
    body = (
        "<p>Use this code to verify your email address:</p>"
        f"{_code_block(otp)}"
        f"<p>The code expires in {minutes} minutes. If you did not request it, ignore this email.</p>"
    )
    return "Your AutoFloy verification code", _layout("Verify your email", body)


def welcome_email(display_name: str = "") -> Tuple[str, str]:
    greeting = f"Hi {escape(display_name)}," if display_name else "Hi,"
    body = (
        f"<p>{greeting}</p>"
        "<p>Your email is verified. Connect your Facebook page to start automating replies.</p>"
    )
    return "Welcome to AutoFloy!", _layout("Welcome aboard", body)


def password_reset_email(otp: str, company_name: str = DEFAULT_COMPANY_NAME, minutes: int = 10) -> Tuple[str, str]:
    body = (
        "<p>We received a request to reset your password. Enter this code to continue:</p>"
        f"{_code_block(otp)}"
        f"<p>The code expires in {minutes} minutes.</p>"
    )
    return f"{company_name} password reset code", _layout("Reset your password", body, company_name)


def account_deletion_email(otp: str, minutes: int = 10) -> Tuple[str, str]:
    body = (
        "<p>You asked to permanently delete your account. Confirm with this code:</p>"
        f"{_code_block(otp)}"
        f"<p>The code expires in {minutes} minutes. If this was not you, change your password now.</p>"
    )
    return "Confirm account deletion", _layout("Delete your account", body)


def trial_reminder_email(hours_remaining: int) -> Tuple[str, str]:
    body = (
        f"<p>Your free trial ends in about <strong>{hours_remaining} hours</strong>.</p>"
        "<p>Pick a plan to keep your automations running without interruption.</p>"
    )
    return f"Your trial ends in {hours_remaining} hours", _layout("Trial ending soon", body)


def trial_expired_email() -> Tuple[str, str]:
    body = "<p>Your free trial has ended and automations are paused. Upgrade any time to resume.</p>"
    return "Your AutoFloy trial has ended", _layout("Trial ended", body)


def subscription_reminder_email(plan: str, days_remaining: int) -> Tuple[str, str]:
    body = (
        f"<p>Your <strong>{escape(plan.title())}</strong> subscription ends in {days_remaining} day(s).</p>"
        "<p>Renew now to avoid losing access.</p>"
    )
    return f"Your subscription ends in {days_remaining} day(s)", _layout("Subscription ending soon", body)


def subscription_expired_email(plan: str) -> Tuple[str, str]:
    body = (
        f"<p>Your <strong>{escape(plan.title())}</strong> subscription has expired.</p>"
        "<p>Renew to reactivate your automations.</p>"
    )
    return "Your subscription has expired", _layout("Subscription expired", body)


def payment_approved_email(plan_name: str, amount, currency: str) -> Tuple[str, str]:
    body = (
        f"<p>Your payment of {escape(str(amount))} {escape(currency)} was approved.</p>"
        f"<p>The <strong>{escape(plan_name)}</strong> plan is now active on your account.</p>"
    )
    return "Payment approved", _layout("Payment approved!", body)


def admin_password_changed_email() -> Tuple[str, str]:
    body = (
        "<p>An administrator has reset your password.</p>"
        "<p>If you did not ask for this, contact support immediately.</p>"
    )
    return "Your password was changed", _layout("Password changed", body)


def account_status_email(status: str) -> Tuple[str, str]:
    if status == "suspended":
        body = "<p>Your account has been suspended. Contact support if you think this is a mistake.</p>"
        return "Your account has been suspended", _layout("Account suspended", body)
    body = "<p>Your account is active again. Welcome back!</p>"
    return "Your account has been reactivated", _layout("Account reactivated", body)
