# story_config.py
# Runtime settings: Streamlit secrets first, then environment, then defaults.
import os
import logging
from typing import NamedTuple, Optional

import streamlit as st

from story_constants import (
    ANNOTATION_FALLBACKS,
    DEFAULT_WINDOW,
    FALLBACK_SKIP,
    FORWARD_SHRINKING,
    SMOOTHING_POLICIES,
)

logger = logging.getLogger(__name__)

BACKENDS = ("local", "url", "hf", "auto")


def _secret_or_env(k, default=""):
    try:
        if hasattr(st, "secrets") and k in st.secrets:
            return st.secrets[k]
    except Exception:
        # no secrets.toml outside a deployed app
        pass
    return os.getenv(k, default)


class Settings(NamedTuple):
    backend: str
    data_path: str
    data_url: str
    hf_repo_id: str
    hf_repo_type: str
    hf_filename: str
    hf_token: Optional[str]
    window: int
    policy: str
    annotation_fallback: str


def _resolve_backend(data_url: str, hf_repo_id: str) -> str:
    v = str(_secret_or_env("DATA_BACKEND", "auto") or "auto").lower()
    if v not in BACKENDS:
        logger.warning("Unknown DATA_BACKEND %r, using auto", v)
        v = "auto"
    if v != "auto":
        return v
    if data_url:
        return "url"
    if hf_repo_id:
        return "hf"
    return "local"


def _resolve_window() -> int:
    raw = _secret_or_env("SMOOTHING_WINDOW", DEFAULT_WINDOW)
    try:
        window = int(raw)
    except (TypeError, ValueError):
        logger.warning("SMOOTHING_WINDOW=%r is not an integer, using %d", raw, DEFAULT_WINDOW)
        return DEFAULT_WINDOW
    if window < 1:
        logger.warning("SMOOTHING_WINDOW=%d must be positive, using %d", window, DEFAULT_WINDOW)
        return DEFAULT_WINDOW
    return window


def _resolve_choice(key: str, choices, default: str) -> str:
    v = str(_secret_or_env(key, default) or default).strip().lower()
    if v not in choices:
        logger.warning("%s=%r is not one of %s, using %s", key, v, ", ".join(choices), default)
        return default
    return v


def load_settings() -> Settings:
    data_url = str(_secret_or_env("DATA_URL", "") or "")
    hf_repo_id = str(_secret_or_env("HF_REPO_ID", "") or "")
    return Settings(
        backend=_resolve_backend(data_url, hf_repo_id),
        data_path=str(_secret_or_env("DATA_PATH", "data/GlobalTemperatures.csv")),
        data_url=data_url,
        hf_repo_id=hf_repo_id,
        hf_repo_type=str(_secret_or_env("HF_REPO_TYPE", "dataset")),
        hf_filename=str(_secret_or_env("HF_FILENAME", "GlobalTemperatures.csv")),
        hf_token=_secret_or_env("HF_TOKEN", "") or None,
        window=_resolve_window(),
        policy=_resolve_choice("SMOOTHING_POLICY", SMOOTHING_POLICIES, FORWARD_SHRINKING),
        annotation_fallback=_resolve_choice("ANNOTATION_FALLBACK", ANNOTATION_FALLBACKS, FALLBACK_SKIP),
    )
