from typing import List, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API Configuration
    api_v1_prefix: str = Field(default="/api/v1")
    api_title: str = Field(default="Doctor Onboarding API")
    api_version: str = Field(default="1.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")

    # Environment (for conditional validation)
    environment: str = Field(default="development")

    # Supabase
    # Empty values are tolerated outside production so the app can boot
    # with in-memory services (tests, local UI work).
    supabase_url: str = Field(default="")
    supabase_anon_key: str = Field(default="")
    supabase_service_key: str = Field(default="")

    # Storage buckets
    profile_images_bucket: str = Field(default="doctor-profile-images")
    documents_bucket: str = Field(default="doctor-documents")
    certificates_bucket: str = Field(default="doctor-certificates")
    signed_url_expiry_seconds: int = Field(default=3600)

    # Upload progress tracking
    upload_tick_interval_seconds: float = Field(default=0.2)
    upload_tick_step: int = Field(default=10)
    upload_tick_ceiling: int = Field(default=90)
    upload_reap_delay_seconds: float = Field(default=1.0)

    # Record store
    doctors_table: str = Field(default="doctors")
    profiles_table: str = Field(default="profiles")
    default_consultation_fee: int = Field(default=500)

    # Wizard sessions held in-process by the API
    registration_session_ttl_seconds: int = Field(default=3600)

    # CORS
    cors_origins: Union[str, List[str]] = Field(default="http://localhost:5173")
    cors_allow_credentials: bool = Field(default=True)

    # Rate Limiting
    rate_limit_requests: int = Field(default=100)
    rate_limit_submit_requests: int = Field(default=10)

    # Sentry (optional, disabled if empty)
    sentry_dsn: str = Field(default="")

    @model_validator(mode="after")
    def validate_production_supabase(self):
        """Supabase credentials must come from the environment in production"""
        if self.environment == "production":
            missing = [
                name
                for name in ("supabase_url", "supabase_anon_key", "supabase_service_key")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    f"{', '.join(name.upper() for name in missing)} must be set in production"
                )
        return self

    @model_validator(mode="after")
    def validate_upload_ticks(self):
        if not 0 <= self.upload_tick_ceiling < 100:
            raise ValueError("UPLOAD_TICK_CEILING must be in [0, 100)")
        return self

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle comma-separated string
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("cors_origins", mode="after")
    @classmethod
    def ensure_cors_is_list(cls, v):
        if isinstance(v, str):
            return [v]
        return v

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)


settings = Settings()
