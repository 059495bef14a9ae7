"""Application configuration using Pydantic Settings."""
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "School Billing"
    debug: bool = False
    log_level: str = "INFO"

    # School / contract document
    school_name: str = ""
    school_address: str = ""

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "school_billing"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    jwt_refresh_token_expire_days: int = 30

    # Seed admin (created on startup when missing)
    admin_email: str = "admin@example.com"
    admin_password: str = ""
    admin_full_name: str = "School Admin"

    # Document storage: S3 when a bucket is set, local directory otherwise
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    s3_bucket_contracts: str = ""
    contracts_dir: str = "storage/contracts"

    # Billing
    installments_per_year: int = 12
    registration_due_offset_days: int = 10
    penalty_block_days: int = 30
    penalty_block_rate: Decimal = Decimal("0.02")  # per complete block of lateness
    moratorium_monthly_rate: Decimal = Decimal("0.02")  # spread linearly over 30 days

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:5173"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
