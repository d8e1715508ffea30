"""Configuration module — environment variables and constants."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env lives in the project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# --- Supabase ---
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_SECRET_KEY: str = os.getenv("SUPABASE_SECRET_KEY", "")

# --- Regions (default set; core functions take the list as a parameter) ---
REGIONS = [
    "CALIBAN",
    "CALIBAS",
    "GLIBA",
    "MIBA",
    "MPIBA",
    "NAIBA",
    "NEIBA",
    "PNBA",
    "SIBA",
]

DEFAULT_CATEGORY = "General"

# --- Store paging ---
PAGE_SIZE = 1000  # rows per range() request
MAX_PAGES = 500
IN_FILTER_CHUNK_SIZE = 500  # isbns per .in_() filter
UPSERT_CHUNK_SIZE = 500

# --- Ranking thresholds ---
RANKING_LIMIT = 50
MOST_REGIONAL_LIMIT = 25  # per region
NATIONAL_MIN_REGIONS = 5
EFFICIENT_MIN_WEEKS = 4
POOL_TOP_NATIONAL = 100
POOL_TOP_PER_REGION = 10
POOL_MIN_RSI = 0.45
REGIONAL_RSI_THRESHOLD = 0.35
RSI_BOOST_MAX = 0.5

# --- Elsewhere / unique discovery ---
EXCLUSION_LOOKBACK_DAYS = 365
RECENCY_WINDOW_DAYS = 28
UNIQUE_LOOKBACK_DAYS = 365
ELSEWHERE_PAGE_SIZE = 20

# --- Logging ---
LOG_DIR = _PROJECT_ROOT / "logs"
