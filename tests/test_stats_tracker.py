"""
Tests for StatsTracker, ProgressTracker and the skipped-card log.
"""
import json

import pytest


class TestStatsTracker:

    def test_init_defaults(self):
        from cargo_pricer.stats import StatsTracker

        stats = StatsTracker(max_products_limit=50)

        assert stats.max_products_limit == 50
        assert stats.cards_loaded == 0
        assert stats.cards_processed == 0
        assert stats.cards_skipped == 0
        assert stats.records_saved == 0
        assert stats.interrupted is False
        assert stats.alerts == []

    def test_record_skip_adds_alert_with_severity(self):
        from cargo_pricer.stats import AlertSeverity, AlertType, StatsTracker

        stats = StatsTracker()
        stats.record_skip(AlertType.SCRAPE_FAILURE, "timeout", 'box_1_1', 111)
        stats.record_skip(AlertType.INFEASIBLE_MARGIN, "margin", 'box_2_1', 222)

        assert stats.cards_skipped == 2
        assert stats.alerts[0].severity == AlertSeverity.WARNING
        assert stats.alerts[1].severity == AlertSeverity.CRITICAL
        assert stats.alerts[1].nm_id == 222

    def test_every_skip_reason_has_alert_type(self):
        """Each SkipItem reason maps onto an AlertType with a severity."""
        from cargo_pricer import models
        from cargo_pricer.stats import ALERT_SEVERITY, AlertType

        skip_classes = [
            models.SkipItem, models.VendorCodeMismatch, models.VendorCodeDecodeError,
            models.SkuIntegrityError, models.ScrapeError, models.PriceParseError,
            models.PricingError, models.InfeasibleMargin, models.NegativePrice,
        ]
        for cls in skip_classes:
            assert AlertType(cls.reason) in ALERT_SEVERITY

    def test_db_error_and_truncation(self):
        from cargo_pricer.stats import AlertType, StatsTracker

        stats = StatsTracker()
        stats.record_db_error("disk full", 'box_1_1', 1)
        stats.record_catalog_truncated("stopped early")

        assert stats.cards_skipped == 1
        assert len(stats.get_alerts_by_type(AlertType.DB_ERROR)) == 1
        assert len(stats.get_alerts_by_type(AlertType.CATALOG_TRUNCATED)) == 1

    def test_alert_counts(self):
        from cargo_pricer.stats import AlertType, StatsTracker

        stats = StatsTracker()
        stats.record_skip(AlertType.VENDOR_CODE_MISMATCH, "a")
        stats.record_skip(AlertType.VENDOR_CODE_MISMATCH, "b")
        stats.record_skip(AlertType.PRICE_PARSE, "c")

        assert stats.get_alert_counts() == {'vendor_code_mismatch': 2, 'price_parse': 1}

    def test_print_report(self, capsys):
        from cargo_pricer.stats import AlertType, StatsTracker

        stats = StatsTracker(max_products_limit=10)
        stats.cards_loaded = 3
        stats.record_saved()
        stats.record_skip(AlertType.SKU_INTEGRITY, "2 SKUs", 'box_1_1')
        stats.interrupted = True
        stats.print_report()

        out = capsys.readouterr().out
        assert "PRICING RUN REPORT" in out
        assert "sku_integrity" in out
        assert "interrupted" in out
        assert stats.completed_at is not None


class TestProgressTracker:

    def test_format_progress(self):
        from cargo_pricer.stats import ProgressTracker

        tracker = ProgressTracker(4)
        tracker.update()
        line = tracker.format_progress('box_4821_3', 'OK')

        assert '[1/4]' in line
        assert '25.0%' in line
        assert 'box_4821_3' in line
        assert '[OK]' in line

    def test_zero_total(self):
        from cargo_pricer.stats import ProgressTracker

        line = ProgressTracker(0).format_progress('x', 'OK')
        assert '[0/0]' in line


class TestSaveSkippedLog:

    def test_writes_grouped_json(self, tmp_path):
        from cargo_pricer.stats import AlertType, StatsTracker, save_skipped_log

        stats = StatsTracker()
        stats.record_skip(AlertType.SCRAPE_FAILURE, "timeout", 'box_1_1', 111)
        path = save_skipped_log(stats, str(tmp_path))

        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        assert data['total_alerts'] == 1
        assert data['summary'] == {'scrape_failure': 1}
        assert data['alerts'][0]['alert_type'] == 'scrape_failure'
        assert data['alerts'][0]['severity'] == 'warning'
        assert data['alerts'][0]['vendor_code'] == 'box_1_1'

    def test_nothing_to_log(self, tmp_path):
        from cargo_pricer.stats import StatsTracker, save_skipped_log

        assert save_skipped_log(StatsTracker(), str(tmp_path)) == ""
        assert list(tmp_path.iterdir()) == []
