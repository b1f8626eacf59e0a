# amount_detection/config.py
"""
Runtime configuration for the amount detection pipeline
Every heuristic threshold lives here so it can be tuned per deployment
"""
import os
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Tunable constants used by the extraction, classification and OCR stages"""

    # Classification
    match_tolerance: float = Field(0.10, gt=0.0, le=1.0, description="Relative tolerance for pattern matches")
    mismatch_tolerance: float = Field(0.05, ge=0.0, le=1.0, description="Deviation that starts the confidence penalty")
    context_window: int = Field(50, ge=0, description="Characters around an amount used for keyword context")
    invoice_number_limit: float = Field(500, description="Invoice numbers below this are dropped from amounts")

    # Provenance
    provenance_window: int = Field(20, ge=0, description="Characters around a fallback provenance match")

    # Noise filtering
    toll_free_prefixes: Tuple[str, ...] = ("800", "888", "877", "866", "855", "844")
    phone_min_digits: int = Field(7, ge=1, description="Shortest digit run treated as a phone number")
    id_value_threshold: float = Field(10_000_000, description="Undecorated integers above this are IDs")
    min_keywordless_value: float = Field(10, description="Smaller values need a billing keyword in the text")
    skip_dates: bool = True

    # Boundary
    max_text_length: int = Field(10_000, gt=0)
    max_file_size: int = Field(10 * 1024 * 1024, gt=0)
    allowed_content_types: Tuple[str, ...] = ("image/jpeg", "image/jpg", "image/png", "image/gif")

    # OCR collaborator
    ocr_timeout: float = Field(30.0, gt=0, description="Seconds before a recognition call is abandoned")
    ocr_language: str = "eng"
    tesseract_configs: Tuple[str, ...] = ("--oem 3 --psm 6", "--oem 3 --psm 4", "--oem 3 --psm 3")

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and a local .env file)"""
        load_dotenv()

        overrides = {}
        env_map = {
            "MATCH_TOLERANCE": ("match_tolerance", float),
            "CONTEXT_WINDOW": ("context_window", int),
            "PROVENANCE_WINDOW": ("provenance_window", int),
            "MAX_TEXT_LENGTH": ("max_text_length", int),
            "OCR_TIMEOUT": ("ocr_timeout", float),
            "OCR_LANGUAGE": ("ocr_language", str),
            "LOG_LEVEL": ("log_level", str),
        }
        for env_name, (field_name, cast) in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                overrides[field_name] = cast(raw.strip())

        skip_dates = os.getenv("SKIP_DATES")
        if skip_dates is not None:
            overrides["skip_dates"] = skip_dates.strip().lower() not in ("0", "false", "no")

        return cls(**overrides)


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once"""
    return Settings.from_env()
