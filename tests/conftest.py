"""
Pytest fixtures and test doubles for pricing run tests.
"""
import pytest
import sqlite3
import os
import sys

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cargo_pricer.database import SQLITE_SCHEMA
from cargo_pricer.models import (
    ApiError, CardsPage, Cursor, Dimensions, PageResult, PricedRecord, ProductCard, ScrapeError,
)
from cargo_pricer.supplier import PageRenderer


@pytest.fixture
def sqlite_conn():
    """In-memory SQLite database with the products table."""
    conn = sqlite3.connect(':memory:')
    conn.row_factory = sqlite3.Row
    conn.execute(SQLITE_SCHEMA)
    conn.commit()
    yield conn
    conn.close()


@pytest.fixture
def memory_db():
    """Connected DatabaseConnection on an in-memory SQLite database."""
    from cargo_pricer.database import DatabaseConnection

    db = DatabaseConnection(':memory:', postgres_url='')
    db.connect()
    yield db
    db.close()


# =============================================================================
# Test doubles
# =============================================================================

class FakeRenderer(PageRenderer):
    """Serves canned page results by URL and counts fetches."""

    def __init__(self, pages=None, failures=None):
        self.pages = pages or {}
        self.failures = failures or {}
        self.calls = []
        self.closed = False

    def fetch(self, url):
        self.calls.append(url)
        if self.failures.get(url):
            self.failures[url] -= 1
            raise ScrapeError(f"Page scrape failed for {url}")
        if url not in self.pages:
            raise ScrapeError(f"Unit price element not found on page {url}")
        return self.pages[url]

    def close(self):
        self.closed = True


class FakeClient:
    """Stands in for WBClient with canned JSON responses."""

    def __init__(self, tariffs=None, commissions=None, price_pages=None, card_pages=None,
                 fail_cards_after=None, fail_prices=False, fail_tariffs=False):
        self.tariffs = tariffs
        self.commissions = commissions
        self.price_pages = price_pages or [{'data': {'listGoods': []}}]
        self.card_pages = card_pages or []
        self.fail_cards_after = fail_cards_after
        self.fail_prices = fail_prices
        self.fail_tariffs = fail_tariffs
        self.tariff_dates = []
        self.price_requests = []
        self.card_requests = []

    def get_box_tariffs(self, tariff_date):
        self.tariff_dates.append(tariff_date)
        if self.fail_tariffs:
            raise ApiError("HTTP 401 from tariffs")
        return self.tariffs

    def get_commissions(self):
        return self.commissions

    def get_price_list(self, request):
        self.price_requests.append(request)
        if self.fail_prices:
            raise ApiError("HTTP 500 from prices")
        index = request.offset // request.limit
        if index < len(self.price_pages):
            return self.price_pages[index]
        return {'data': {'listGoods': []}}

    def get_cards_page(self, request):
        self.card_requests.append(request)
        index = len(self.card_requests) - 1
        if self.fail_cards_after is not None and index >= self.fail_cards_after:
            raise ApiError("GET cards failed after 5 attempts: timeout")
        if index < len(self.card_pages):
            return self.card_pages[index]
        return CardsPage(cards=[], cursor=Cursor())


# =============================================================================
# Helpers
# =============================================================================

def make_card(nm_id, vendor_code, skus=None, dims=(10, 10, 10), title='Коробка'):
    """Helper to build a product card."""
    return ProductCard(
        nm_id=nm_id,
        vendor_code=vendor_code,
        title=title,
        updated_at='2024-05-01T10:00:00Z',
        dimensions=Dimensions(*dims),
        skus=list(skus) if skus is not None else [f'20400{nm_id}'],
    )


def make_page(price_text='50', stores=3):
    return PageResult(price_text=price_text, stock_location_count=stores)


def make_record(product_id='4821', pack_count=1, **overrides):
    """Helper to build a priced record with plausible values."""
    values = dict(
        product_id=product_id,
        pack_count=pack_count,
        nm_id=111,
        vendor_code=f'box_{product_id}_{pack_count}',
        title='Коробка',
        width=10,
        height=10,
        length=10,
        sku='2040011',
        wb_price=900.0,
        wb_discounted_price=700.0,
        wb_loyalty_price=680.0,
        stock_count=3,
        cost=50,
        tariff=50.0,
        commission_pct=15.0,
        commission=81.0,
        ok_price=540.0,
        display_price=755,
        display_discount=28,
    )
    values.update(overrides)
    return PricedRecord(**values)


def tariff_response(name='Маркетплейс', base='50', liter='10'):
    return {'response': {'data': {'warehouseList': [
        {'warehouseName': 'Коледино', 'boxDeliveryBase': '46', 'boxDeliveryLiter': '11,5'},
        {'warehouseName': name, 'boxDeliveryBase': base, 'boxDeliveryLiter': liter},
    ]}}}


def commission_response(rates=None):
    rates = rates if rates is not None else {3979: 15}
    return {'report': [
        {'subjectID': subject_id, 'subjectName': 'Коробки', 'kgvpMarketplace': rate}
        for subject_id, rate in rates.items()
    ]}


def price_response(items):
    """items: list of (vendor_code, price, discounted, club)."""
    return {'data': {'listGoods': [
        {'nmID': i, 'vendorCode': code,
         'sizes': [{'price': price, 'discountedPrice': disc, 'clubDiscountedPrice': club}]}
        for i, (code, price, disc, club) in enumerate(items)
    ]}}
