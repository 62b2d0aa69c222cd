"""Transactional email (one-time codes) sent through Resend."""

import logging
import os
from typing import Dict, Optional, Tuple

import resend

logger = logging.getLogger(__name__)

APP_NAME = "Vendor Storefront"

_PURPOSES = {
    "verification": {
        "subject": f"{APP_NAME} - Verify your email",
        "heading": "Verify your email address",
        "intro": "Thanks for signing up. Enter the code below to activate your vendor account:",
        "minutes": 5,
    },
    "password_reset": {
        "subject": f"{APP_NAME} - Password reset code",
        "heading": "Password reset request",
        "intro": "We received a request to reset your password. Use the code below to continue:",
        "minutes": 10,
    },
}


def build_otp_email_html(otp: str, name: Optional[str], purpose: str) -> str:
    copy = _PURPOSES[purpose]
    return f"""<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="text-align: center; margin-bottom: 30px;">
    <h1 style="color: #10b981; margin: 0;">{APP_NAME}</h1>
    <p style="color: #6b7280; margin: 5px 0;">{copy["heading"]}</p>
  </div>
  <div style="background: #f9fafb; padding: 30px; border-radius: 12px; margin-bottom: 20px;">
    <h2 style="color: #1f2937; margin-top: 0;">Hello {name or "there"},</h2>
    <p style="color: #4b5563; line-height: 1.6;">{copy["intro"]}</p>
    <div style="text-align: center; margin: 30px 0;">
      <div style="background: #10b981; color: white; font-size: 32px; font-weight: bold; padding: 20px; border-radius: 8px; letter-spacing: 8px; display: inline-block;">
        {otp}
      </div>
    </div>
    <p style="color: #6b7280; font-size: 14px; text-align: center;">This code will expire in {copy["minutes"]} minutes</p>
  </div>
  <p style="color: #92400e; font-size: 14px;">If you didn't request this code, you can ignore this email.</p>
</div>"""


def _send_via_resend(payload: Dict[str, object]) -> Tuple[bool, Optional[str]]:
    api_key = (os.getenv("RESEND_API_KEY") or "").strip()
    if not api_key:
        return False, "Resend API key is not configured."

    resend.api_key = api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)

    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)
    return True, None


def send_otp_email(email: str, otp: str, name: Optional[str] = None, purpose: str = "verification") -> bool:
    """Best-effort send. Returns False (and logs) instead of raising."""
    if purpose not in _PURPOSES:
        raise ValueError(f"Unknown email purpose: {purpose}")

    sender = os.getenv("EMAIL_FROM", f"{APP_NAME} <no-reply@example.com>")
    payload: Dict[str, object] = {
        "from": sender,
        "to": [email],
        "subject": _PURPOSES[purpose]["subject"],
        "html": build_otp_email_html(otp, name, purpose),
        "text": f"Your {APP_NAME} code is {otp}. It expires in {_PURPOSES[purpose]['minutes']} minutes.",
    }

    ok, error = _send_via_resend(payload)
    if not ok:
        logger.error("OTP email (%s) to %s failed: %s", purpose, email, error)
    return ok
