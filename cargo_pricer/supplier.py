"""
Supplier page scraping.

The supplier shows its per-unit pickup price and store availability only
after JavaScript renders the "pickup" tab, so pages are rendered with a
Playwright browser. The browser is expensive to start: one PlaywrightRenderer
is opened per run and reused for every product.

ScrapeCache memoizes parsed results by supplier product id so every pack
size variant of a product shares one page load.
"""

import re
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Callable, Dict, Optional

from bs4 import BeautifulSoup

from . import config
from .models import PageResult, PriceParseError, RendererError, ScrapeError, ScrapedCost

PICKUP_TAB_SELECTOR = 'li.tabs-item a[href="#samovivoz-tabs"]'
UNIT_PRICE_SELECTOR = 'li[data-min="1"] .price-val'
AVAILABLE_STORE_SELECTOR = '.avail-item-status.avail'

BROWSER_CLOSED_ERRORS = [
    'target page, context or browser has been closed',
    'browser has been closed',
    'context has been closed',
    'page has been closed',
    'target closed',
]


def product_url(product_id: str) -> str:
    return f"{config.SUPPLIER_BASE_URL}{product_id}/"


def normalize_price_text(price_text: str) -> float:
    """
    Parse a supplier price string to float.
    Examples:
    - "1 250 р" → 1250.0
    - "1 250,50 ₽" → 1250.5
    - "  899p " → 899.0
    - "по запросу" → PriceParseError
    """
    if not price_text:
        raise PriceParseError("Empty price text")

    # Currency markers, then whitespace (incl. non-breaking) used as thousands separators
    cleaned = re.sub(r'руб\.?|[р₽p]', '', price_text.strip().lower())
    cleaned = re.sub(r'\s', '', cleaned).replace(',', '.')
    try:
        value = float(cleaned)
    except ValueError:
        raise PriceParseError(f"Cannot parse price: {price_text!r}")
    if value < 0:
        raise PriceParseError(f"Negative price: {price_text!r}")
    return value


def parse_product_html(html: str) -> PageResult:
    """Extract unit price text and available store count from rendered page HTML."""
    soup = BeautifulSoup(html, 'html.parser')
    price_el = soup.select_one(UNIT_PRICE_SELECTOR)
    if price_el is None:
        raise ScrapeError("Unit price element not found on page")
    return PageResult(
        price_text=price_el.get_text(strip=True),
        stock_location_count=len(soup.select(AVAILABLE_STORE_SELECTOR)),
    )


# =============================================================================
# Page renderers
# =============================================================================

class PageRenderer(ABC):
    """Renders a supplier product page and reads its price and availability."""

    @abstractmethod
    def fetch(self, url: str) -> PageResult:
        """Return the page result or raise ScrapeError."""

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class PlaywrightRenderer(PageRenderer):
    """
    Chromium page shared for the whole run.

    Not safe for concurrent callers: a pool of renderers is needed for that.
    """

    def __init__(self, headless: bool = True, timeout_ms: int = config.PAGE_TIMEOUT_MS,
                 settle_seconds: float = config.TAB_SETTLE_SECONDS):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.settle_seconds = settle_seconds
        self._playwright = None
        self._browser = None
        self._page = None

    def start(self) -> None:
        from playwright.sync_api import sync_playwright

        print("  Initializing Playwright browser...", flush=True)
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self.headless,
            args=['--disable-gpu', '--disable-blink-features=AutomationControlled'],
        )
        context = self._browser.new_context(
            viewport={'width': 1280, 'height': 800},
            locale='ru-RU',
        )
        self._page = context.new_page()
        self._page.set_default_timeout(self.timeout_ms)

    def _launch(self) -> None:
        try:
            self.start()
        except Exception as e:
            self.close()
            raise RendererError(f"Browser launch failed: {str(e)[:200]}")

    def _is_browser_closed(self, error: Exception) -> bool:
        error_str = str(error).lower()
        return any(err in error_str for err in BROWSER_CLOSED_ERRORS)

    def fetch(self, url: str, retry_on_close: bool = True) -> PageResult:
        if self._page is None:
            self._launch()
        try:
            self._page.goto(url, wait_until='domcontentloaded')
            time.sleep(self.settle_seconds)
            self._page.click(PICKUP_TAB_SELECTOR)
            time.sleep(self.settle_seconds)
            return parse_product_html(self._page.content())
        except ScrapeError:
            raise
        except Exception as e:
            if retry_on_close and self._is_browser_closed(e):
                print("    Browser was closed, reconnecting...", flush=True)
                self.close()
                return self.fetch(url, retry_on_close=False)
            raise ScrapeError(f"Page scrape failed for {url}: {str(e)[:120]}")

    def close(self) -> None:
        if self._browser:
            try:
                self._browser.close()
            except Exception as e:
                print(f"    Browser close error: {e}", flush=True)
        if self._playwright:
            try:
                self._playwright.stop()
            except Exception as e:
                print(f"    Playwright stop error: {e}", flush=True)
        self._browser = None
        self._page = None
        self._playwright = None


# =============================================================================
# Scrape cache
# =============================================================================

class ScrapeCache:
    """
    Run-scoped, single-flight memo of supplier costs by product id.

    The first call for an id renders and parses the page; later calls get the
    stored ScrapedCost. Concurrent calls for an id that is being fetched wait
    for that fetch. Failures are raised to every waiting caller and are not
    stored, so the next call for the id tries again.
    """

    def __init__(self, renderer: PageRenderer, url_for: Callable[[str], str] = product_url):
        self.renderer = renderer
        self.url_for = url_for
        self._lock = threading.Lock()
        self._results: Dict[str, ScrapedCost] = {}
        self._in_flight: Dict[str, Future] = {}
        self.fetches = 0
        self.hits = 0

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._results

    def get(self, product_id: str) -> Optional[ScrapedCost]:
        return self._results.get(product_id)

    def fetch(self, product_id: str) -> ScrapedCost:
        with self._lock:
            cached = self._results.get(product_id)
            if cached is not None:
                self.hits += 1
                print(f"    [CACHE] Using cached supplier data for {product_id}", flush=True)
                return cached
            future = self._in_flight.get(product_id)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[product_id] = future
                self.fetches += 1
            else:
                self.hits += 1

        if not owner:
            return future.result()

        try:
            print(f"    [SCRAPE] Parsing supplier page for {product_id}", flush=True)
            page = self.renderer.fetch(self.url_for(product_id))
            result = ScrapedCost(
                base_price=normalize_price_text(page.price_text),
                stock_count=int(page.stock_location_count),
            )
        except BaseException as e:
            with self._lock:
                del self._in_flight[product_id]
            future.set_exception(e)
            raise

        with self._lock:
            self._results[product_id] = result
            del self._in_flight[product_id]
        future.set_result(result)
        return result
