import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables.

    Provides validated access to Supabase and the auxiliary integrations
    (email providers, push notifications, Cloudinary).
    """

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    SUPABASE_BUCKET: str = os.getenv("SUPABASE_BUCKET", "reports")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "")
    VERSION: str = os.getenv("APP_VERSION", "1.0.0")

    CORS_ALLOWED_ORIGINS_ENV: str = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173")

    JWT_SECRET: str = os.getenv("JWT_SECRET", "your-super-secret-jwt-key-change-in-production")
    JWT_EXPIRES_IN: str = os.getenv("JWT_EXPIRES_IN", "24h")
    JWT_REFRESH_EXPIRES_IN: str = os.getenv("JWT_REFRESH_EXPIRES_IN", "7d")

    EMAIL_PROVIDER: str = os.getenv("EMAIL_PROVIDER", "auto")
    EMAIL_FALLBACK_MODE: str = os.getenv("EMAIL_FALLBACK_MODE", "false")
    BREVO_API_KEY: str = os.getenv("BREVO_API_KEY", "")
    BREVO_SENDER_EMAIL: str = os.getenv("BREVO_SENDER_EMAIL", "")
    GMAIL_USER: str = os.getenv("GMAIL_USER", "")
    GMAIL_APP_PASSWORD: str = os.getenv("GMAIL_APP_PASSWORD", "")
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    RESEND_FROM_EMAIL: str = os.getenv("RESEND_FROM_EMAIL", "Cars-G <noreply@cars-g.com>")

    FIREBASE_PROJECT_ID: str = os.getenv("FIREBASE_PROJECT_ID", "")
    GOOGLE_APPLICATION_CREDENTIALS: str = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")

    CLOUDINARY_CLOUD_NAME: str = os.getenv("CLOUDINARY_CLOUD_NAME", "")
    CLOUDINARY_API_KEY: str = os.getenv("CLOUDINARY_API_KEY", "")
    CLOUDINARY_API_SECRET: str = os.getenv("CLOUDINARY_API_SECRET", "")

    REPORT_DAILY_LIMIT: int = int(os.getenv("REPORT_DAILY_LIMIT", "20"))

    @staticmethod
    def allowed_origins(extra_origins: List[str] | None = None) -> List[str]:
        env_origins = [o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
        defaults = [
            "http://localhost:5173",
            "http://localhost:3000",
            "https://cars-g.vercel.app",
        ]
        frontend_url = os.getenv("FRONTEND_URL", "").rstrip("/")
        if frontend_url:
            defaults.insert(0, frontend_url)
        merged = env_origins + defaults
        if extra_origins:
            merged.extend(extra_origins)
        # Deduplicate while preserving order
        seen = set()
        result: List[str] = []
        for origin in merged:
            if origin not in seen:
                seen.add(origin)
                result.append(origin)
        return result

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == "production"

    @classmethod
    def email_fallback_enabled(cls) -> bool:
        return str(cls.EMAIL_FALLBACK_MODE).strip().lower() == "true"

    @classmethod
    def validate(cls) -> None:
        if not cls.SUPABASE_URL:
            raise ValueError("SUPABASE_URL environment variable is required")
        if not cls.SUPABASE_ANON_KEY:
            raise ValueError("SUPABASE_ANON_KEY environment variable is required")
        if not cls.SUPABASE_SERVICE_KEY:
            raise ValueError("SUPABASE_SERVICE_KEY environment variable is required")
