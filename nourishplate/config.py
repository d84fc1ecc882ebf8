"""
NourishPlate — Centralized configuration.

Loads all settings from .env and validates required keys.
Credentials have no defaults: the process refuses to start without them.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from nourishplate/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Email: Resend transactional API
    RESEND_API_KEY: str
    EMAIL_PROVIDER: str = "resend"          # "resend" | "log"
    EMAIL_SENDER_PROFILE: str = "nourishplate"

    # LLM: provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "gemini"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"

    # Invite links point at the web front end
    APP_BASE_URL: str = "http://localhost:5173"

    # SQLite (families, memberships, profiles, result cache)
    DATABASE_PATH: str = "data/nourishplate.db"
    CACHE_TTL_SECONDS: int = 3600

    # Outbound timeouts (seconds)
    EMAIL_TIMEOUT_SECONDS: float = 15
    LLM_TIMEOUT_SECONDS: float = 120
    DOCUMENT_TIMEOUT_SECONDS: float = 30

    # Largest uploaded plan document we will download
    DOCUMENT_MAX_BYTES: int = 10 * 1024 * 1024

    # HTTP server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    @field_validator("APP_BASE_URL", "GEMINI_API_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("CACHE_TTL_SECONDS", "DOCUMENT_MAX_BYTES", "PORT", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


def _require(name: str) -> str:
    value = os.getenv(name, "")
    if not value or value.startswith("your-"):
        print(f"ERROR: {name} is missing or not set in .env", file=sys.stderr)
        sys.exit(1)
    return value


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    resend_api_key = _require("RESEND_API_KEY")
    llm_api_key = _require("LLM_API_KEY")

    return Settings(
        RESEND_API_KEY=resend_api_key,
        EMAIL_PROVIDER=os.getenv("EMAIL_PROVIDER", "resend"),
        EMAIL_SENDER_PROFILE=os.getenv("EMAIL_SENDER_PROFILE", "nourishplate"),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "gemini"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        GEMINI_API_URL=os.getenv(
            "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta/models"
        ),
        APP_BASE_URL=os.getenv("APP_BASE_URL", "http://localhost:5173"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/nourishplate.db"),
        CACHE_TTL_SECONDS=os.getenv("CACHE_TTL_SECONDS", "3600"),
        EMAIL_TIMEOUT_SECONDS=float(os.getenv("EMAIL_TIMEOUT_SECONDS", "15")),
        LLM_TIMEOUT_SECONDS=float(os.getenv("LLM_TIMEOUT_SECONDS", "120")),
        DOCUMENT_TIMEOUT_SECONDS=float(os.getenv("DOCUMENT_TIMEOUT_SECONDS", "30")),
        DOCUMENT_MAX_BYTES=os.getenv("DOCUMENT_MAX_BYTES", "10485760"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=os.getenv("PORT", "8000"),
    )


# Singleton, imported by all other modules as:
#   from nourishplate.config import settings
settings = _load_settings()
