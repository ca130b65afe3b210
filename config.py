from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

load_dotenv()

DEFAULT_SITE_URL = "https://portal.unidoxia.com"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    site_url: str
    upload_dir: Path
    max_upload_bytes: int
    log_level: str


def secret_value(*names: str) -> str | None:
    """First non-empty Streamlit secret among ``names``; dotted names read nested tables."""
    try:
        for name in names:
            section, _, key = name.partition(".")
            if key:
                if section in st.secrets and key in st.secrets[section]:
                    value = str(st.secrets[section][key]).strip()
                    if value:
                        return value
            elif name in st.secrets:
                value = str(st.secrets[name]).strip()
                if value:
                    return value
    except Exception:
        # st.secrets raises when no secrets.toml exists at all.
        return None
    return None


def _setting(env_name: str, *secret_names: str, default: str | None = None) -> str | None:
    value = os.getenv(env_name)
    if value and value.strip():
        return value.strip()
    return secret_value(env_name, *secret_names) or default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    max_upload_mb = int(_setting("MAX_UPLOAD_MB", default="10") or 10)
    return Settings(
        database_url=_setting("DATABASE_URL", "database_url", "database.url"),
        site_url=(_setting("SITE_URL", "site_url", default=DEFAULT_SITE_URL) or DEFAULT_SITE_URL).rstrip("/"),
        upload_dir=Path(_setting("UPLOAD_DIR", default="uploads") or "uploads"),
        max_upload_bytes=max_upload_mb * 1024 * 1024,
        log_level=(_setting("LOG_LEVEL", default="INFO") or "INFO").upper(),
    )


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel(level or get_settings().log_level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
