"""
Run statistics, skip alerts and console progress.
"""

import json
import os
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional


class AlertType(Enum):
    """Why a card was not stored, or what degraded the run."""
    VENDOR_CODE_MISMATCH = "vendor_code_mismatch"
    VENDOR_CODE_DECODE = "vendor_code_decode"
    SKU_INTEGRITY = "sku_integrity"
    SCRAPE_FAILURE = "scrape_failure"
    PRICE_PARSE = "price_parse"
    INFEASIBLE_MARGIN = "infeasible_margin"
    NEGATIVE_PRICE = "negative_price"
    PRICING = "pricing"
    DB_ERROR = "db_error"
    CATALOG_TRUNCATED = "catalog_truncated"
    SKIPPED = "skipped"


class AlertSeverity(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


ALERT_SEVERITY = {
    AlertType.VENDOR_CODE_MISMATCH: AlertSeverity.INFO,
    AlertType.VENDOR_CODE_DECODE: AlertSeverity.WARNING,
    AlertType.SKU_INTEGRITY: AlertSeverity.CRITICAL,
    AlertType.SCRAPE_FAILURE: AlertSeverity.WARNING,
    AlertType.PRICE_PARSE: AlertSeverity.WARNING,
    AlertType.INFEASIBLE_MARGIN: AlertSeverity.CRITICAL,
    AlertType.NEGATIVE_PRICE: AlertSeverity.CRITICAL,
    AlertType.PRICING: AlertSeverity.WARNING,
    AlertType.DB_ERROR: AlertSeverity.CRITICAL,
    AlertType.CATALOG_TRUNCATED: AlertSeverity.CRITICAL,
    AlertType.SKIPPED: AlertSeverity.WARNING,
}


@dataclass
class Alert:
    """Individual alert record."""
    alert_type: AlertType
    severity: AlertSeverity
    vendor_code: Optional[str] = None
    nm_id: Optional[int] = None
    message: str = ""


class StatsTracker:
    """
    Track run statistics and alerts for reporting.
    Collects counts while cards are processed, prints a report at the end.
    """

    def __init__(self, max_products_limit: Optional[int] = None):
        self.max_products_limit = max_products_limit
        self.started_at = datetime.now()
        self.completed_at: Optional[datetime] = None

        self.cards_loaded = 0
        self.cards_processed = 0
        self.cards_skipped = 0
        self.records_saved = 0
        self.pages_scraped = 0
        self.cache_hits = 0
        self.interrupted = False

        self.alerts: List[Alert] = []

    def record_saved(self):
        self.records_saved += 1

    def record_skip(self, alert_type: AlertType, message: str,
                    vendor_code: Optional[str] = None, nm_id: Optional[int] = None):
        """Record a card that was skipped with a warning."""
        self.cards_skipped += 1
        self._add(alert_type, message, vendor_code, nm_id)

    def record_db_error(self, message: str, vendor_code: Optional[str] = None,
                        nm_id: Optional[int] = None):
        self.cards_skipped += 1
        self._add(AlertType.DB_ERROR, message, vendor_code, nm_id)

    def record_catalog_truncated(self, message: str):
        self._add(AlertType.CATALOG_TRUNCATED, message)

    def _add(self, alert_type: AlertType, message: str,
             vendor_code: Optional[str] = None, nm_id: Optional[int] = None):
        self.alerts.append(Alert(
            alert_type=alert_type,
            severity=ALERT_SEVERITY[alert_type],
            vendor_code=vendor_code,
            nm_id=nm_id,
            message=message,
        ))

    def get_alert_counts(self) -> Dict[str, int]:
        """Get counts of each alert type."""
        counts: Dict[str, int] = {}
        for alert in self.alerts:
            key = alert.alert_type.value
            counts[key] = counts.get(key, 0) + 1
        return counts

    def get_alerts_by_type(self, alert_type: AlertType) -> List[Alert]:
        return [a for a in self.alerts if a.alert_type == alert_type]

    def print_report(self):
        """Print the final run statistics report to console."""
        self.completed_at = datetime.now()
        duration = self.completed_at - self.started_at
        duration_str = str(timedelta(seconds=int(duration.total_seconds())))

        print("\n" + "=" * 70)
        print("PRICING RUN REPORT")
        print("=" * 70)
        print(f"\nRun Duration: {duration_str}")
        if self.interrupted:
            print("Run was interrupted by operator")
        if self.max_products_limit:
            print(f"Max Products Limit: {self.max_products_limit}")

        print("\n--- CARDS ---")
        print(f"  Loaded:        {self.cards_loaded:>6}")
        print(f"  Processed:     {self.cards_processed:>6}")
        print(f"  Skipped:       {self.cards_skipped:>6}")
        print(f"  Saved:         {self.records_saved:>6}")

        print("\n--- SUPPLIER PAGES ---")
        print(f"  Scraped:       {self.pages_scraped:>6}")
        print(f"  Cache hits:    {self.cache_hits:>6}")

        counts = self.get_alert_counts()
        if counts:
            print("\n--- SKIP REASONS ---")
            for alert_type, count in sorted(counts.items(), key=lambda x: -x[1]):
                print(f"  {alert_type:<25} {count:>6}")

        critical = [a for a in self.alerts if a.severity == AlertSeverity.CRITICAL]
        if critical:
            print("\n--- CRITICAL ---")
            for alert in critical[:10]:
                print(f"  {alert.vendor_code or '-':<20} {alert.message}")
            if len(critical) > 10:
                print(f"  ... ({len(critical)} total)")

        print("\n" + "=" * 70, flush=True)


class ProgressTracker:
    """Track per-card progress with rate and ETA."""

    def __init__(self, total: int):
        self.total = total
        self.processed = 0
        self.start_time = time.time()

    def update(self):
        self.processed += 1

    def get_rate(self) -> float:
        elapsed = time.time() - self.start_time
        if elapsed > 0:
            return self.processed / elapsed
        return 0

    def get_eta(self) -> str:
        rate = self.get_rate()
        if rate > 0:
            remaining = self.total - self.processed
            return str(timedelta(seconds=int(remaining / rate)))
        return "calculating..."

    def format_progress(self, name: str, status: str) -> str:
        timestamp = datetime.now().strftime("%H:%M:%S")
        pct = (self.processed / self.total * 100) if self.total > 0 else 0
        return (f"[{timestamp}] [{self.processed}/{self.total}] ({pct:5.1f}%) "
                f"{name[:40]:<40} [{status}] | {self.get_rate():.1f}/s | ETA: {self.get_eta()}")


def save_skipped_log(stats: StatsTracker, output_dir: str = "output") -> str:
    """Save skipped cards grouped by reason for review."""
    if not stats.alerts:
        return ""

    os.makedirs(output_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    filepath = os.path.join(output_dir, f"pricing_skipped_{timestamp}.json")

    items = []
    for alert in stats.alerts:
        item = asdict(alert)
        item['alert_type'] = alert.alert_type.value
        item['severity'] = alert.severity.value
        items.append(item)

    log_data = {
        'generated_at': datetime.now().isoformat(),
        'total_alerts': len(items),
        'summary': stats.get_alert_counts(),
        'alerts': items,
    }
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(log_data, f, indent=2, ensure_ascii=False)

    print(f"Logged {len(items)} alerts -> {filepath}")
    return filepath
