"""
Command line entry point.

    python -m cargo_pricer --categories 3979 --margin 0.3 --tax 0.07
"""

import argparse
import os
import sys
from datetime import datetime
from typing import List, Optional

from . import config
from .config import PricingConfig
from .database import DatabaseConnection
from .models import PricerError
from .pipeline import run_pricing
from .stats import StatsTracker
from .supplier import PlaywrightRenderer
from .wb_client import WBClient


def parse_category_ids(raw: str) -> List[int]:
    """Parse "3979, 1234" → [3979, 1234]."""
    try:
        return [int(part) for part in raw.replace(' ', '').split(',') if part]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Category ids must be integers: {raw!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Price marketplace cards from supplier costs and store one row per pack size'
    )
    parser.add_argument('--categories', type=parse_category_ids, required=True,
                        help='Comma-separated category (subject) ids to load cards for')
    parser.add_argument('--margin', type=float, default=0.3, help='Desired margin fraction')
    parser.add_argument('--tax', type=float, default=0.07, help='Tax rate fraction')
    parser.add_argument('--delivery', type=int, default=100, help='Per-item delivery fee')
    parser.add_argument('--pvz', type=int, default=15, help='Per-item warehouse handling fee')
    parser.add_argument('--db', default=config.DEFAULT_DB_PATH,
                        help='SQLite file (ignored when DATABASE_URL is set)')
    parser.add_argument('--pattern', default=config.DEFAULT_VENDOR_CODE_PATTERN,
                        help='Vendor code validation regex')
    parser.add_argument('--no-pcs', action='store_true',
                        help='Ignore the pack count segment of vendor codes')
    parser.add_argument('--commission-category', type=int, default=config.DEFAULT_COMMISSION_CATEGORY,
                        help='Category whose commission rate is applied')
    parser.add_argument('--commission-buffer', type=float, default=1.0,
                        help='Percentage points added to the commission rate')
    parser.add_argument('--warehouse', default=config.DEFAULT_WAREHOUSE,
                        help='Warehouse name in the box tariff list')
    parser.add_argument('--tariff-date', help='Tariff date YYYY-MM-DD (default: today)')
    parser.add_argument('--clamp-tariff', action='store_true',
                        help='Never charge less than the base tariff for sub-liter parcels')
    parser.add_argument('--seed', type=int, help='Seed for the display price markup')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--max-products', type=int, help='Maximum cards to price')
    parser.add_argument('--csv', action='store_true', help='Also export stored rows to CSV')
    parser.add_argument('--output-dir', default='output', help='Output directory for CSV and logs')
    return parser


def config_from_args(args: argparse.Namespace) -> PricingConfig:
    return PricingConfig(
        category_ids=args.categories,
        desired_margin=args.margin,
        tax_rate=args.tax,
        delivery_fee=args.delivery,
        warehouse_fee=args.pvz,
        db_path=args.db,
        vendor_code_pattern=args.pattern,
        use_pack_count=not args.no_pcs,
        commission_category_id=args.commission_category,
        commission_buffer_pct=args.commission_buffer,
        warehouse_name=args.warehouse,
        tariff_date=args.tariff_date,
        clamp_tariff_to_base=args.clamp_tariff,
        seed=args.seed,
        headless=not args.headed,
        output_dir=args.output_dir,
        export_csv=args.csv,
        max_products=args.max_products,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = config_from_args(args)

    print("=" * 60)
    print("Marketplace Pricing Run")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    os.makedirs(cfg.output_dir, exist_ok=True)
    db = DatabaseConnection(cfg.db_path)
    renderer = PlaywrightRenderer(headless=cfg.headless)
    stats = StatsTracker(max_products_limit=cfg.max_products)
    try:
        cfg.validate()
        client = WBClient(config.get_api_key())
        print("\nInitializing database...", flush=True)
        db.connect()
        run_pricing(cfg, client, renderer, db, stats)
    except PricerError as e:
        print(f"\nFATAL: {e}", flush=True)
        return 1
    except KeyboardInterrupt:
        # Ctrl-C before card processing started
        stats.interrupted = True
        print("\n\nInterrupted!", flush=True)
    finally:
        renderer.close()
        db.close()

    stats.print_report()
    if stats.interrupted:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
