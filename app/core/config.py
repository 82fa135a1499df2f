from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Optional
from pydantic import AnyHttpUrl, Field

from app.core.schemas.header_policy import RouteOverrideSettings

# Applied to every response unless a route override says otherwise
DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",  # Only meaningful over HTTPS
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Content-Security-Policy": "default-src 'self'; object-src 'none'; frame-ancestors 'none'",
}


class Settings(BaseSettings):
    # Application Core
    APP_NAME: str = "Header Policy Service"
    DEBUG_MODE: bool = False
    ENVIRONMENT: str = "development"  # e.g., development, test, staging, production
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"  # Default log level

    # CORS
    CORS_ALLOWED_ORIGINS: List[AnyHttpUrl] = []  # Example: ["http://localhost:3000", "https://myfrontend.example.com"]

    # Security headers
    SECURITY_HEADERS: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SECURITY_HEADERS))
    SECURITY_HEADERS_ALLOW_CUSTOM: bool = False  # Allow headers outside the known security header set
    # The interactive docs load scripts and styles from a CDN, so they get no CSP
    SECURITY_HEADERS_ROUTES: List[RouteOverrideSettings] = Field(
        default_factory=lambda: [
            RouteOverrideSettings(pattern="/api/v1/docs", remove=["Content-Security-Policy"]),
            RouteOverrideSettings(pattern="/api/v1/redoc", remove=["Content-Security-Policy"]),
        ]
    )
    # JSON file with {"headers": {...}, "routes": [...], "allow_custom": false}; replaces the three above
    SECURITY_HEADERS_POLICY_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        extra='ignore',  # Ignore extra env vars not defined in the model
        case_sensitive=False  # Environment variables are typically case-insensitive
    )

settings = Settings()  # Single, importable instance
