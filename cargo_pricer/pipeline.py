"""
One pricing run.

Tariff and commission are resolved once, the products table is rebuilt,
the catalog is drained, current prices are loaded, then every card is
decoded, costed from the supplier page, priced and upserted. A bad card is
skipped with a warning; only run-wide lookups and store or browser setup
are fatal.
"""

import random
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Pattern

from . import pricing
from .catalog import single_sku, walk_catalog
from .config import PricingConfig
from .database import DatabaseConnection, init_products_table, save_to_csv, upsert_priced_record
from .models import PriceQuote, PricedRecord, ProductCard, SkipItem, TariffQuote
from .resolvers import fetch_price_quotes, resolve_commission, resolve_tariff
from .stats import AlertType, ProgressTracker, StatsTracker, save_skipped_log
from .supplier import PageRenderer, ScrapeCache
from .vendor_code import decode_vendor_code
from .wb_client import WBClient


@dataclass
class RunContext:
    """State owned by one run and discarded when it ends."""
    config: PricingConfig
    tariff: TariffQuote
    commission_pct: float
    quotes: Dict[str, PriceQuote]
    cache: ScrapeCache
    rng: random.Random
    pattern: Optional[Pattern] = None

    def __post_init__(self):
        if self.pattern is None:
            self.pattern = re.compile(self.config.vendor_code_pattern)

    @property
    def commission_rate(self) -> float:
        return pricing.commission_fraction(self.commission_pct, self.config.commission_buffer_pct)


@dataclass
class RunResult:
    records: List[PricedRecord] = field(default_factory=list)
    stats: Optional[StatsTracker] = None
    catalog_complete: bool = True


def price_card(card: ProductCard, ctx: RunContext) -> PricedRecord:
    """
    Build the priced record for one card.

    Raises a SkipItem subclass when the card cannot be priced.
    """
    cfg = ctx.config
    decoded = decode_vendor_code(card.vendor_code, ctx.pattern, cfg.use_pack_count)
    sku = single_sku(card)

    quote = ctx.quotes.get(card.vendor_code) or PriceQuote(vendor_code=card.vendor_code)
    scraped = ctx.cache.fetch(decoded.product_id)

    dims = card.dimensions
    volume = pricing.volume_liters(dims.width, dims.height, dims.length)
    tariff = pricing.box_tariff(volume, ctx.tariff.base, ctx.tariff.per_liter)
    if cfg.clamp_tariff_to_base:
        tariff = max(tariff, ctx.tariff.base)

    costs = pricing.fixed_cost(scraped.base_price, decoded.pack_count, tariff,
                               cfg.delivery_fee, cfg.warehouse_fee)
    commission_rate = ctx.commission_rate
    ok_price = pricing.solve_price(cfg.desired_margin, cfg.tax_rate, commission_rate, costs)
    display_price, display_discount = pricing.display_price_and_discount(
        ok_price, ctx.rng, cfg.markup_min, cfg.markup_max
    )

    print(f"    volume={volume:.3f}L tariff={tariff:.2f} fixed={costs} "
          f"price={ok_price:.2f} display={display_price} (-{display_discount}%)", flush=True)

    return PricedRecord(
        product_id=decoded.product_id,
        pack_count=decoded.pack_count,
        nm_id=card.nm_id,
        vendor_code=card.vendor_code,
        title=card.title,
        width=dims.width,
        height=dims.height,
        length=dims.length,
        sku=sku,
        wb_price=quote.price,
        wb_discounted_price=quote.discounted_price,
        wb_loyalty_price=quote.loyalty_price,
        stock_count=scraped.stock_count,
        cost=pricing.procurement_cost(scraped.base_price, decoded.pack_count),
        tariff=tariff,
        commission_pct=ctx.commission_pct,
        commission=pricing.commission_amount(ok_price, commission_rate),
        ok_price=ok_price,
        display_price=display_price,
        display_discount=display_discount,
    )


def process_cards(cards: List[ProductCard], ctx: RunContext, db: DatabaseConnection,
                  stats: StatsTracker, saved: List[PricedRecord]) -> List[PricedRecord]:
    """Price and store each card in order, appending stored records to `saved`."""
    tracker = ProgressTracker(len(cards))

    for card in cards:
        tracker.update()
        try:
            record = price_card(card, ctx)
        except SkipItem as e:
            stats.record_skip(AlertType(e.reason), str(e), card.vendor_code, card.nm_id)
            print(tracker.format_progress(card.vendor_code, "SKIPPED"), flush=True)
            print(f"    [SKIP] {e.reason}: {e}", flush=True)
            continue
        stats.cards_processed += 1

        try:
            db.execute_with_retry(upsert_priced_record, record)
            db.commit()
        except Exception as e:
            if db.connection:
                db.connection.rollback()
            stats.record_db_error(f"Upsert failed for {record.key()}: {e}",
                                  card.vendor_code, card.nm_id)
            print(tracker.format_progress(card.vendor_code, "DB-ERROR"), flush=True)
            continue

        saved.append(record)
        stats.record_saved()
        print(tracker.format_progress(card.vendor_code, "OK"), flush=True)
        print(f"    Saved {record.product_id} x{record.pack_count} (SKU {record.sku})", flush=True)

    return saved


def run_pricing(config: PricingConfig, client: WBClient, renderer: PageRenderer,
                db: DatabaseConnection, stats: Optional[StatsTracker] = None) -> RunResult:
    """
    Execute one full run.

    `db` must be connected. Raises ResolutionError / StoreError on fatal
    conditions; everything per-card is recorded on the stats tracker.
    """
    config.validate()
    stats = stats or StatsTracker(max_products_limit=config.max_products)
    result = RunResult(stats=stats)

    print("\nResolving tariffs...", flush=True)
    tariff = resolve_tariff(client, config.warehouse_name, config.effective_tariff_date())
    print(f"  Box tariff '{tariff.warehouse_name}' on {tariff.date}: "
          f"base={tariff.base:.2f}, liter={tariff.per_liter:.2f}", flush=True)

    print("\nResolving commission...", flush=True)
    commission_pct = resolve_commission(client, config.commission_category_id)
    print(f"  Commission for category {config.commission_category_id}: {commission_pct}% "
          f"(+{config.commission_buffer_pct} buffer)", flush=True)

    print("\nPreparing database...", flush=True)
    init_products_table(db.connection)

    print("", flush=True)
    walk = walk_catalog(client.get_cards_page, config.category_ids)
    if not walk.complete:
        result.catalog_complete = False
        stats.record_catalog_truncated(f"Catalog walk stopped early: {walk.error}")
    cards = walk.cards
    stats.cards_loaded = len(cards)
    if config.max_products:
        cards = cards[:config.max_products]
        print(f"Limited to {config.max_products} cards", flush=True)

    print("\nLoading marketplace prices...", flush=True)
    quotes = fetch_price_quotes(client)

    ctx = RunContext(
        config=config,
        tariff=tariff,
        commission_pct=commission_pct,
        quotes=quotes,
        cache=ScrapeCache(renderer),
        rng=pricing.make_rng(config.seed),
    )

    print(f"\nPricing {len(cards)} cards...\n", flush=True)
    try:
        process_cards(cards, ctx, db, stats, result.records)
    except KeyboardInterrupt:
        stats.interrupted = True
        print("\n\nInterrupted! Rows stored so far are kept.", flush=True)
    finally:
        stats.pages_scraped = ctx.cache.fetches
        stats.cache_hits = ctx.cache.hits

    if config.export_csv and result.records:
        save_to_csv(result.records, config.output_dir)
    save_skipped_log(stats, config.output_dir)
    print(f"\nFinished at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", flush=True)
    return result
