"""
Configuration for the marketplace pricing run.

Endpoints, timeouts and retry limits are module constants. Secrets and the
optional PostgreSQL URL come from the environment (a .env file next to the
project root is loaded once). Everything that shapes the pricing itself is
collected into PricingConfig.
"""

import os
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .models import ConfigError


# Load environment variables from project root
_project_dir = Path(__file__).resolve().parent.parent
load_dotenv(_project_dir / ".env")


# =============================================================================
# Marketplace API
# =============================================================================

TARIFFS_URL = "https://common-api.wildberries.ru/api/v1/tariffs/box"
COMMISSION_URL = "https://common-api.wildberries.ru/api/v1/tariffs/commission"
CARDS_LIST_URL = "https://content-api.wildberries.ru/content/v2/get/cards/list"
PRICES_URL = "https://discounts-prices-api.wildberries.ru/api/v2/list/goods/filter"

REQUEST_TIMEOUT = 10    # Seconds per HTTP call
CARDS_PAGE_LIMIT = 100  # Cards per cursor page
PRICES_PAGE_LIMIT = 1000

# Retry configuration
MAX_RETRIES = 5
INITIAL_RETRY_DELAY = 1
MAX_RETRY_DELAY = 30

# =============================================================================
# Supplier site
# =============================================================================

SUPPLIER_BASE_URL = "https://sp.cargo-avto.ru/catalog/"
PAGE_TIMEOUT_MS = 30000
TAB_SETTLE_SECONDS = 2

# =============================================================================
# Pricing constants
# =============================================================================

RETURNS_HANDLING = 50   # Added to tariff before the returns reserve split
RETURNS_DIVISOR = 9
DISPLAY_PRICE_STEP = 5

DEFAULT_DB_PATH = "ue.db"
DEFAULT_WAREHOUSE = "Маркетплейс"
DEFAULT_VENDOR_CODE_PATTERN = r"^box_\d+_\d+$"
DEFAULT_COMMISSION_CATEGORY = 3979


def get_api_key() -> str:
    """Marketplace API key from WB_API_KEY. Missing key is fatal."""
    key = os.getenv("WB_API_KEY", "").strip()
    if not key:
        raise ConfigError("WB_API_KEY not set. Put it in the environment or .env")
    return key


def get_postgres_url() -> Optional[str]:
    """Get PostgreSQL connection URL from environment."""
    return os.getenv("DATABASE_URL") or None


@dataclass
class PricingConfig:
    """All options of one pricing run."""
    category_ids: List[int] = field(default_factory=list)
    desired_margin: float = 0.3
    tax_rate: float = 0.07
    delivery_fee: int = 100
    warehouse_fee: int = 15
    db_path: str = DEFAULT_DB_PATH
    vendor_code_pattern: str = DEFAULT_VENDOR_CODE_PATTERN
    use_pack_count: bool = True
    commission_category_id: int = DEFAULT_COMMISSION_CATEGORY
    commission_buffer_pct: float = 1.0
    warehouse_name: str = DEFAULT_WAREHOUSE
    tariff_date: Optional[str] = None
    clamp_tariff_to_base: bool = False
    markup_min: float = 1.30
    markup_max: float = 1.50
    seed: Optional[int] = None
    headless: bool = True
    output_dir: str = "output"
    export_csv: bool = False
    max_products: Optional[int] = None

    def effective_tariff_date(self) -> str:
        return self.tariff_date or date.today().isoformat()

    def validate(self) -> None:
        """Raise ConfigError if the options cannot produce a sane run."""
        if not self.category_ids:
            raise ConfigError("At least one category id is required")
        for name in ("desired_margin", "tax_rate"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                raise ConfigError(f"{name} must be a fraction in [0, 1), got {value}")
        if self.delivery_fee < 0 or self.warehouse_fee < 0:
            raise ConfigError("Fees cannot be negative")
        if self.commission_buffer_pct < 0:
            raise ConfigError("commission_buffer_pct cannot be negative")
        if self.markup_min <= 0 or self.markup_min > self.markup_max:
            raise ConfigError(
                f"Invalid markup range [{self.markup_min}, {self.markup_max})"
            )
        if self.max_products is not None and self.max_products <= 0:
            raise ConfigError("max_products must be positive")
        try:
            re.compile(self.vendor_code_pattern)
        except re.error as e:
            raise ConfigError(f"Invalid vendor code pattern: {e}")
        if self.tariff_date:
            try:
                date.fromisoformat(self.tariff_date)
            except ValueError:
                raise ConfigError(f"tariff_date must be YYYY-MM-DD, got {self.tariff_date}")
