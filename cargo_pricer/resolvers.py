"""
One-shot lookups run once per pricing run: box tariff, commission rates
and current marketplace prices. Any failure here is fatal to the run.
"""

import re
from datetime import date
from typing import Dict, List, Optional, Union

from . import config
from .models import ApiError, PriceListRequest, PriceQuote, ResolutionError, TariffQuote
from .wb_client import WBClient


def parse_tariff_value(raw: Union[int, float, str, None]) -> Optional[float]:
    """
    Parse a tariff coefficient that may be a number or a string.
    Examples:
    - 48 → 48.0
    - "48,5" → 48.5
    - "1 039,5" → 1039.5
    - "-" → None
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    cleaned = re.sub(r'\s', '', str(raw)).replace(',', '.')
    try:
        return float(cleaned)
    except ValueError:
        return None


def resolve_tariff(client: WBClient, warehouse_name: str = config.DEFAULT_WAREHOUSE,
                   tariff_date: Optional[str] = None) -> TariffQuote:
    """Look up base and per-liter box delivery cost of the named warehouse."""
    tariff_date = tariff_date or date.today().isoformat()
    try:
        data = client.get_box_tariffs(tariff_date)
    except ApiError as e:
        raise ResolutionError(f"Tariff lookup failed: {e}")

    warehouses = (((data or {}).get('response') or {}).get('data') or {}).get('warehouseList') or []
    for warehouse in warehouses:
        if warehouse.get('warehouseName') != warehouse_name:
            continue
        base = parse_tariff_value(warehouse.get('boxDeliveryBase'))
        per_liter = parse_tariff_value(warehouse.get('boxDeliveryLiter'))
        if base is None or per_liter is None:
            raise ResolutionError(
                f"Cannot convert tariffs of '{warehouse_name}': "
                f"base={warehouse.get('boxDeliveryBase')!r}, liter={warehouse.get('boxDeliveryLiter')!r}"
            )
        return TariffQuote(warehouse_name=warehouse_name, base=base,
                           per_liter=per_liter, date=tariff_date)

    raise ResolutionError(f"Warehouse '{warehouse_name}' not found in tariffs for {tariff_date}")


def load_commission_rates(client: WBClient) -> Dict[int, float]:
    """Map category (subject) id to marketplace commission percent."""
    try:
        data = client.get_commissions()
    except ApiError as e:
        raise ResolutionError(f"Commission lookup failed: {e}")

    rates: Dict[int, float] = {}
    for row in (data or {}).get('report') or []:
        subject_id = row.get('subjectID')
        if subject_id is None:
            continue
        rates[int(subject_id)] = float(row.get('kgvpMarketplace') or 0)
    return rates


def resolve_commission(client: WBClient, category_id: int) -> float:
    """
    Commission percent for one category.

    A missing category or a zero rate is fatal: every price depends on it.
    """
    rates = load_commission_rates(client)
    rate = rates.get(category_id)
    if rate is None:
        raise ResolutionError(f"No commission for category {category_id} "
                              f"({len(rates)} categories returned)")
    if rate <= 0:
        raise ResolutionError(f"Commission for category {category_id} is {rate}")
    return rate


def fetch_price_quotes(client: WBClient, page_limit: int = config.PRICES_PAGE_LIMIT) -> Dict[str, PriceQuote]:
    """
    Fetch current list/discounted/loyalty prices keyed by vendor code.

    Pages by offset until a short page, or until a page adds no new vendor
    code. The first quote seen for a vendor code wins; later duplicates are
    ignored.
    """
    quotes: Dict[str, PriceQuote] = {}
    offset = 0
    while True:
        try:
            data = client.get_price_list(PriceListRequest(limit=page_limit, offset=offset))
        except ApiError as e:
            raise ResolutionError(f"Price list lookup failed at offset {offset}: {e}")

        goods: List[Dict] = ((data or {}).get('data') or {}).get('listGoods') or []
        added = 0
        for product in goods:
            vendor_code = product.get('vendorCode')
            if not vendor_code or vendor_code in quotes:
                continue
            sizes = product.get('sizes') or []
            first = sizes[0] if sizes else {}
            quotes[vendor_code] = PriceQuote(
                vendor_code=vendor_code,
                price=float(first.get('price') or 0),
                discounted_price=float(first.get('discountedPrice') or 0),
                loyalty_price=float(first.get('clubDiscountedPrice') or 0),
            )
            added += 1

        if len(goods) < page_limit:
            break
        if not added:
            print(f"  [WARN] Price page at offset {offset} repeated known goods, stopping", flush=True)
            break
        offset += page_limit

    print(f"  Loaded prices for {len(quotes)} vendor codes", flush=True)
    return quotes
