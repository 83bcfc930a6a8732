"""
config.py — Appliance Inspector Configuration
==============================================
All runtime knobs come from the environment (or a local .env file).

The payment bypass (SKIP_PAYMENT_VERIFICATION) only exists outside production.
Setting it while APP_ENV=production stops the service at startup.
"""

import os
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

log = logging.getLogger("config")

MB = 1024 * 1024

DEFAULT_REFUSAL_PHRASES = [
    "i can't assist",
    "i cannot assist",
    "i'm sorry",
    "i am unable to",
    "i'm unable to",
]

PROMOTIONAL_LINKS = [
    ("EstimateMyFix.com", "https://estimatemyfix.com"),
    ("FreeLocalAppliancePickup.com", "https://freelocalappliancepickup.com"),
]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [p.strip().lower() for p in raw.split(",") if p.strip()]


class AnalysisConfig(BaseModel):
    """Everything the /analyze handler needs to know, injected per request."""

    app_env:                 str = "production"
    max_images:              int = 5
    max_bytes_per_image:     int = 10 * MB
    max_batch_bytes:         int = 20 * MB
    require_payment:         bool = True
    skip_payment_verification: bool = False
    prompt_template_version: str = "v3"

    # Model
    model_provider:          str = "gemini"
    gemini_api_key:          Optional[str] = None
    gemini_model:            str = "gemini-1.5-flash"
    anthropic_api_key:       Optional[str] = None
    anthropic_model:         str = "claude-3-7-sonnet-20250219"
    model_timeout_seconds:   float = 90.0
    temperature:             float = 0.7
    single_image_max_tokens: int = 1500
    multi_image_max_tokens:  int = 2500

    # Response validation
    min_response_chars:      int = 200
    refusal_phrases:         List[str] = DEFAULT_REFUSAL_PHRASES

    # Payments
    stripe_secret_key:       Optional[str] = None
    analysis_price_cents:    int = 299
    currency:                str = "usd"

    # Local (non-serverless) deployments can stage uploads on disk
    upload_staging_dir:      Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def payment_enforced(self) -> bool:
        if not self.require_payment:
            return False
        return not (self.skip_payment_verification and not self.is_production)


def load_config() -> AnalysisConfig:
    """Build an AnalysisConfig from the environment. Fails loudly on unsafe combos."""
    cfg = AnalysisConfig(
        app_env=os.getenv("APP_ENV", "production"),
        max_images=_env_int("MAX_IMAGES", 5),
        max_bytes_per_image=_env_int("MAX_BYTES_PER_IMAGE", 10 * MB),
        max_batch_bytes=_env_int("MAX_BATCH_BYTES", 20 * MB),
        require_payment=_env_bool("REQUIRE_PAYMENT", True),
        skip_payment_verification=_env_bool("SKIP_PAYMENT_VERIFICATION", False),
        prompt_template_version=os.getenv("PROMPT_TEMPLATE_VERSION", "v3"),
        model_provider=os.getenv("MODEL_PROVIDER", "gemini").lower(),
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-3-7-sonnet-20250219"),
        model_timeout_seconds=float(os.getenv("MODEL_TIMEOUT_SECONDS", "90")),
        min_response_chars=_env_int("MIN_RESPONSE_CHARS", 200),
        refusal_phrases=_env_list("REFUSAL_PHRASES", DEFAULT_REFUSAL_PHRASES),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        analysis_price_cents=_env_int("ANALYSIS_PRICE_CENTS", 299),
        upload_staging_dir=os.getenv("UPLOAD_STAGING_DIR") or None,
    )

    # Guard: the testing bypass can never ship enabled
    if cfg.skip_payment_verification and cfg.is_production:
        raise RuntimeError(
            "SKIP_PAYMENT_VERIFICATION is not allowed when APP_ENV=production."
        )
    if cfg.skip_payment_verification:
        log.warning(f"⚠️ Payment verification disabled (APP_ENV={cfg.app_env}).")

    return cfg


@lru_cache(maxsize=1)
def get_config() -> AnalysisConfig:
    return load_config()
