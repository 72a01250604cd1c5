from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Access policy file; the packaged policy is used when unset
    AUTHZ_POLICY_PATH: Optional[str] = Field(None, description="Path to access policy YAML")

    # Diagnostics
    AUTHZ_WARN_UNKNOWN_PERMISSIONS: bool = Field(True, description="Warn when an undeclared permission is checked")
    AUTHZ_LOG_ALL_CHECKS: bool = Field(False, description="Audit allowed checks as well as denials")

    # JWT / Auth
    JWT_SECRET: Optional[str] = Field(None, description="JWT signing secret")
    JWT_ALGO: str = Field("HS256", description="JWT signing algorithm")

    @field_validator("JWT_ALGO")
    @classmethod
    def _jwt_algo_upper(cls, v: str) -> str:
        return (v or "HS256").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
