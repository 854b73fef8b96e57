"""
Data records and error types shared across the pricing run.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


# =============================================================================
# Errors
# =============================================================================

class PricerError(Exception):
    """Base class for all pricing run errors."""


class ConfigError(PricerError):
    """Invalid or missing configuration. Fatal."""


class ApiError(PricerError):
    """Marketplace API call failed after retries."""


class ResolutionError(PricerError):
    """A run-wide lookup (tariff, commission, prices) could not be resolved. Fatal."""


class StoreError(PricerError):
    """Record store could not be initialized. Fatal."""


class RendererError(PricerError):
    """Page renderer (browser) could not be launched. Fatal."""


class SkipItem(PricerError):
    """
    Per-card condition: the card is skipped with a warning and the run continues.

    `reason` is the short key used to group skips in the report.
    """
    reason = "skipped"

    def __init__(self, message: str, vendor_code: Optional[str] = None):
        super().__init__(message)
        self.vendor_code = vendor_code


class VendorCodeMismatch(SkipItem):
    reason = "vendor_code_mismatch"


class VendorCodeDecodeError(SkipItem):
    reason = "vendor_code_decode"


class SkuIntegrityError(SkipItem):
    reason = "sku_integrity"


class ScrapeError(SkipItem):
    reason = "scrape_failure"


class PriceParseError(ScrapeError):
    reason = "price_parse"


class PricingError(SkipItem):
    reason = "pricing"


class InfeasibleMargin(PricingError):
    reason = "infeasible_margin"


class NegativePrice(PricingError):
    reason = "negative_price"


# =============================================================================
# Marketplace data
# =============================================================================

@dataclass
class Dimensions:
    """Parcel dimensions in whole centimeters."""
    width: int = 0
    height: int = 0
    length: int = 0


@dataclass
class ProductCard:
    """One catalog card as returned by the cards list endpoint."""
    nm_id: int
    vendor_code: str
    title: str = ""
    updated_at: str = ""
    dimensions: Dimensions = field(default_factory=Dimensions)
    skus: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict) -> "ProductCard":
        dims = data.get("dimensions") or {}
        skus: List[str] = []
        for size in data.get("sizes") or []:
            skus.extend(size.get("skus") or [])
        return cls(
            nm_id=int(data.get("nmID") or 0),
            vendor_code=data.get("vendorCode") or "",
            title=data.get("title") or "",
            updated_at=data.get("updatedAt") or "",
            dimensions=Dimensions(
                width=int(dims.get("width") or 0),
                height=int(dims.get("height") or 0),
                length=int(dims.get("length") or 0),
            ),
            skus=skus,
        )


@dataclass
class Cursor:
    """Position in the cards list. Empty updated_at or zero nm_id means end of data."""
    updated_at: str = ""
    nm_id: int = 0

    @property
    def exhausted(self) -> bool:
        return not self.updated_at or not self.nm_id


@dataclass
class CardsPage:
    cards: List[ProductCard]
    cursor: Cursor


@dataclass(frozen=True)
class TariffQuote:
    """Box delivery tariff of one warehouse, fixed for the run."""
    warehouse_name: str
    base: float
    per_liter: float
    date: str


@dataclass(frozen=True)
class PriceQuote:
    """Current marketplace price of a vendor code (first size)."""
    vendor_code: str
    price: float = 0.0
    discounted_price: float = 0.0
    loyalty_price: float = 0.0


@dataclass(frozen=True)
class ScrapedCost:
    """Supplier base unit price and number of stores reporting stock."""
    base_price: float
    stock_count: int


@dataclass(frozen=True)
class PageResult:
    """Raw output of the page renderer before normalization."""
    price_text: str
    stock_location_count: int


# =============================================================================
# Request parameters
# =============================================================================

@dataclass
class CardsPageRequest:
    category_ids: List[int]
    limit: int = 100
    updated_at: Optional[str] = None
    last_nm_id: Optional[int] = None
    with_photo: int = 1

    def to_payload(self) -> Dict:
        cursor: Dict = {"limit": self.limit}
        if self.updated_at:
            cursor["updatedAt"] = self.updated_at
        if self.last_nm_id:
            cursor["nmID"] = self.last_nm_id
        return {
            "settings": {
                "cursor": cursor,
                "filter": {
                    "withPhoto": self.with_photo,
                    "objectIDs": list(self.category_ids),
                },
            }
        }


@dataclass
class PriceListRequest:
    limit: int = 1000
    offset: int = 0
    filter_nm_id: Optional[int] = None

    def to_params(self) -> Dict:
        params: Dict = {"limit": self.limit, "offset": self.offset}
        if self.filter_nm_id:
            params["filterNmID"] = self.filter_nm_id
        return params


# =============================================================================
# Output
# =============================================================================

@dataclass
class DecodedVendorCode:
    product_id: str
    pack_count: int = 1


@dataclass
class PricedRecord:
    """One stored row. Natural key: (product_id, pack_count)."""
    product_id: str
    pack_count: int
    nm_id: int
    vendor_code: str
    title: str
    width: int
    height: int
    length: int
    sku: str
    wb_price: float
    wb_discounted_price: float
    wb_loyalty_price: float
    stock_count: int
    cost: int
    tariff: float
    commission_pct: float
    commission: float
    ok_price: float
    display_price: int
    display_discount: int

    def key(self) -> tuple:
        return (self.product_id, self.pack_count)
