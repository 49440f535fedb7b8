# bookfest/config.py
import os

from bookfest.utils.env_loader import load_env_once

ENV_PATH = load_env_once()


def env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name, default)
    if v is None:
        return None
    v = v.strip()
    # treat empty string as "missing"
    return v if v != "" else default


def env_int(name: str, default: int) -> int:
    """
    Safe int env reader:
    - missing -> default
    - empty string -> default
    - invalid -> default
    """
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    s = str(raw).strip()
    if s == "":
        return int(default)
    try:
        return int(s)
    except ValueError:
        return int(default)


def env_float(name: str, default: float) -> float:
    raw = env(name)
    if raw is None:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


# Marketplace endpoints
SITE_URL = "https://techbookfest.org"
MARKET_URL = f"{SITE_URL}/market"
GRAPHQL_URL = f"{SITE_URL}/api/graphql"
PRODUCT_URL_BASE = f"{SITE_URL}/product/"
XSRF_COOKIE = "XSRF-TOKEN"
XSRF_HEADER = "x-xsrf-token"
USER_AGENT = "BookfestCatalog/1.0 (+https://techbookfest.org/market)"

# Fetch tuning. Every value has a default so no environment is required.
PAGE_SIZE = env_int("BOOKFEST_PAGE_SIZE", 2000)
CONCURRENCY = env_int("BOOKFEST_CONCURRENCY", 50)
REQUEST_TIMEOUT = env_float("BOOKFEST_TIMEOUT", 30.0)

# Variants listed per product in the detail query.
VARIANTS_PER_PRODUCT = 20

# Report
DEFAULT_LANG = (env("BOOKFEST_LANG", "en") or "en").lower()
