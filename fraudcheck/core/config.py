"""
Environment-driven configuration for the fraud database.
"""

import os
import random
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/fraudcheck.db")

# Debug flag enables interactive API docs
DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Version written into the account store envelope
STORE_VERSION = os.getenv("STORE_VERSION", "1.0")

# Reporter privacy: submissions show "Undisclosed" instead of the company name
HIDE_COMPANY_NAME = os.getenv("HIDE_COMPANY_NAME", "false").lower() == "true"
UNDISCLOSED_COMPANY = "Undisclosed"

# Company credited by the bundled seed import
DEFAULT_IMPORT_COMPANY = os.getenv("DEFAULT_IMPORT_COMPANY", "MyBankCheck")

# Seed for import randomness (tag fallback, synthetic balances, increments)
TAG_SEED = os.getenv("TAG_SEED")

# Per-key versioned writes instead of last-write-wins
OPTIMISTIC_LOCKING = os.getenv("OPTIMISTIC_LOCKING", "false").lower() == "true"

# Bearer tokens accepted by the integrator API; empty means open access
API_KEYS = [k.strip() for k in os.getenv("API_KEYS", "").split(",") if k.strip()]

# Version string
VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def is_company_name_hidden():
    """Check the reporter privacy toggle."""
    return os.getenv("HIDE_COMPANY_NAME", "false").lower() == "true"


def is_optimistic_locking_enabled():
    """Check if versioned store writes are enabled."""
    return os.getenv("OPTIMISTIC_LOCKING", "false").lower() == "true"


def get_api_keys() -> List[str]:
    """Get accepted API bearer tokens."""
    return [k.strip() for k in os.getenv("API_KEYS", "").split(",") if k.strip()]


def get_tag_seed() -> Optional[int]:
    """Get the configured import seed, or None for an unseeded RNG."""
    seed = os.getenv("TAG_SEED")
    if seed is None or not seed.strip():
        return None
    return int(seed)


def get_rng() -> random.Random:
    """Build the RNG used by imports, seeded from TAG_SEED when set."""
    return random.Random(get_tag_seed())


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(os.getenv("DB_PATH", DB_PATH)).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    seed = os.getenv("TAG_SEED")
    if seed is not None and seed.strip():
        try:
            int(seed)
        except ValueError:
            issues.append(f"Invalid TAG_SEED: {seed}")

    if not STORE_VERSION.strip():
        issues.append("STORE_VERSION must not be empty")

    if not DEFAULT_IMPORT_COMPANY.strip():
        issues.append("DEFAULT_IMPORT_COMPANY must not be empty")

    return issues
