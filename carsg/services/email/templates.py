from datetime import datetime
from html import escape

from ...core.config import Config


SUBJECT = "Verify Your Email - Cars-G"
CODE_TTL_MINUTES = 10

PRIMARY = "#800000"
PRIMARY_DARK = "#660000"
GRAY_BG = "#F7F7F8"
TEXT_COLOR = "#1F2937"
SUBTLE = "#6B7280"


def logo_url() -> str:
    base_url = (Config.FRONTEND_URL or "").rstrip("/")
    return f"{base_url}/images/logo.jpg"


def verification_html(code: str, username: str) -> str:
    code = escape(code)
    username = escape(username)
    year = datetime.now().year
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Verify Your Email</title>
</head>
<body style="font-family: -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif; line-height: 1.6; color: {TEXT_COLOR}; max-width: 640px; margin: 0 auto; padding: 24px; background: #ffffff;">
  <div style="background: linear-gradient(135deg, {PRIMARY} 0%, {PRIMARY_DARK} 100%); padding: 28px; border-radius: 16px; text-align: center; margin-bottom: 24px;">
    <div style="display:inline-flex; align-items:center; gap:12px;">
      <img src="{logo_url()}" alt="Cars-G" width="40" height="40" style="border-radius: 8px; object-fit: cover;" />
      <span style="color:#ffffff; font-size: 22px; font-weight: 800; letter-spacing:.3px;">Cars-G</span>
    </div>
    <h1 style="color: #ffffff; margin: 14px 0 0 0; font-size: 24px; font-weight: 700;">Verify your email</h1>
    <p style="color: #F3F4F6; margin: 6px 0 0 0; font-size: 14px;">Your community for car enthusiasts</p>
  </div>

  <div style="background: {GRAY_BG}; padding: 28px; border-radius: 16px; margin-bottom: 24px;">
    <h2 style="color: {TEXT_COLOR}; margin: 0 0 8px 0; font-size: 18px;">Hi {username}!</h2>
    <p style="font-size: 14px; margin: 0 0 18px 0; color: {SUBTLE};">
      Thanks for joining Cars-G. Please verify your email to complete your registration.
    </p>
    <div style="background: #ffffff; border: 1px dashed {PRIMARY}; border-radius: 12px; padding: 24px; text-align: center; margin: 18px 0;">
      <p style="margin: 0 0 6px 0; font-size: 12px; color: {SUBTLE};">Your verification code</p>
      <div style="font-size: 36px; font-weight: 800; color: {PRIMARY}; letter-spacing: 6px; font-family: 'SFMono-Regular', Menlo, Consolas, 'Courier New', monospace;">
        {code}
      </div>
    </div>
    <p style="font-size: 12px; color: {SUBTLE}; margin: 0;">This code expires in {CODE_TTL_MINUTES} minutes.</p>
  </div>

  <div style="text-align: center; padding: 16px; background: {GRAY_BG}; border-radius: 12px;">
    <p style="margin: 0; font-size: 12px; color: {SUBTLE};">
      If you didn't create an account with Cars-G, you can safely ignore this email.
    </p>
  </div>

  <p style="margin-top: 24px; text-align: center; font-size: 12px; color: {SUBTLE};">&copy; {year} Cars-G. All rights reserved.</p>
</body>
</html>
"""


def verification_text(code: str, username: str) -> str:
    year = datetime.now().year
    return f"""Welcome to Cars-G!

Hi {username}!

Thank you for registering with Cars-G! To complete your registration and start exploring our community, please verify your email address using the code below:

Your verification code is: {code}

This code will expire in {CODE_TTL_MINUTES} minutes for security reasons.

If you didn't create an account with Cars-G, you can safely ignore this email.

(c) {year} Cars-G. All rights reserved."""
