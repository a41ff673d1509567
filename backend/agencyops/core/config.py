"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional
import warnings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    
    # Application
    APP_NAME: str = "Agency Operations API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production
    
    # Database
    DATABASE_URL: str = "sqlite:///./agencyops.db"
    
    # Security
    SECRET_KEY: str = "your-super-secret-key-change-in-production-min-32-chars"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours
    
    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = True
    
    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    
    # Session Security
    SESSION_COOKIE_SECURE: bool = False  # Set True in production with HTTPS
    SESSION_COOKIE_SAMESITE: str = "lax"
    AGENCY_COOKIE_MAX_AGE_DAYS: int = 30
    IMPERSONATION_COOKIE_MAX_AGE_HOURS: int = 8
    
    # Public links (proposals, contracts, invites)
    PUBLIC_CLIENT_URL: str = "http://localhost:3000"
    
    # Email delivery
    EMAIL_FROM_ADDRESS: str = "noreply@example.com"
    EMAIL_FROM_NAME: str = "Agency Operations"
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    EMAIL_TIMEOUT_SECONDS: int = 15
    
    # PDF rendering service (remote); local rendering is used when unset
    PDF_SERVICE_URL: Optional[str] = None
    PDF_TIMEOUT_SECONDS: int = 30
    
    # Document lifetimes
    BETA_INVITE_EXPIRY_DAYS: int = 30
    CONTRACT_VALIDITY_DAYS: int = 30
    PROPOSAL_VALIDITY_DAYS: int = 30
    
    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]
    
    @property
    def database_url(self) -> str:
        """Get properly formatted database URL"""
        url = self.DATABASE_URL
        if url.startswith("file:"):
            return f"sqlite:///{url[5:]}"
        if url.startswith("postgres://"):
            return "postgresql://" + url[len("postgres://"):]
        return url
    
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"
    
    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY or self.SMTP_HOST)
    
    def validate_security_settings(self):
        """Validate security settings and warn about insecure defaults"""
        default_keys = [
            "your-super-secret-key-change-in-production-min-32-chars",
            "secret-key",
            "change-me",
        ]
        
        if self.SECRET_KEY in default_keys:
            if self.is_production:
                raise ValueError(
                    "CRITICAL: Default SECRET_KEY detected in production! "
                    "Set the SECRET_KEY environment variable to a secure random value."
                )
            warnings.warn(
                "WARNING: Using default SECRET_KEY. "
                "Set SECRET_KEY environment variable for production.",
                UserWarning
            )
        
        if len(self.SECRET_KEY) < 32:
            if self.is_production:
                raise ValueError(
                    "CRITICAL: SECRET_KEY is too short for production! "
                    "Use at least 32 characters."
                )
            warnings.warn("WARNING: SECRET_KEY should be at least 32 characters.", UserWarning)
        
        if self.is_production and self.DEBUG:
            raise ValueError(
                "CRITICAL: DEBUG mode is enabled in production! "
                "Set DEBUG=False for production environment."
            )
        
        if self.is_production and not self.SESSION_COOKIE_SECURE:
            warnings.warn(
                "WARNING: SESSION_COOKIE_SECURE is False in production. "
                "Cookies should be secure when using HTTPS.",
                UserWarning
            )
        
        if self.is_production and not self.email_configured:
            warnings.warn(
                "WARNING: No email provider configured. "
                "Set RESEND_API_KEY or SMTP_HOST to deliver documents.",
                UserWarning
            )
        
        return True
    
    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# Validate security settings on import (but don't crash in development)
try:
    settings.validate_security_settings()
except ValueError as e:
    if settings.is_production:
        raise
    warnings.warn(str(e), UserWarning)
