"""Tests for NumberingService and settings loading."""

import json
import logging

from salesflow.config import Settings, configure_logging, load_settings
from salesflow.models.common import ClientRef
from salesflow.models.quote import Quote
from salesflow.services.numbering_service import NumberingService


class TestNumbering:
    def test_sequences_per_kind(self, tmp_path):
        svc = NumberingService(tmp_path, Settings())
        assert svc.next_number("invoice") == "FAC-0001"
        assert svc.next_number("invoice") == "FAC-0002"
        assert svc.next_number("delivery") == "REM-0001"
        assert svc.next_number("credit_note") == "NC-0001"

    def test_persisted(self, tmp_path):
        NumberingService(tmp_path, Settings()).next_number("quote")
        again = NumberingService(tmp_path)
        assert again.next_number("quote") == "COT-0002"

    def test_not_persisted(self, tmp_path):
        NumberingService(tmp_path, Settings(), persist=False).next_number("quote")
        assert not (tmp_path / "settings.json").exists()

    def test_default_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr("salesflow.services.numbering_service.DATA_DIR", tmp_path)
        svc = NumberingService(settings=Settings())
        assert svc.data_dir == tmp_path
        svc.next_number("quote")
        assert json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))["numbering"]["sequences"] == {"quote": 2}

    def test_order_number_from_quote(self):
        svc = NumberingService(settings=Settings(), persist=False)
        q = Quote(client_ref=ClientRef(code="x"), number="COT-0042")
        assert svc.order_number_for(q) == "PED-COT-0042"

    def test_order_number_sequential_when_disabled(self):
        settings = Settings()
        settings.numbering.order_from_quote_number = False
        svc = NumberingService(settings=settings, persist=False)
        assert svc.order_number_for(Quote(client_ref=ClientRef(code="x"), number="COT-1")) == "PED-0001"


class TestSettings:
    def test_defaults_when_missing(self, tmp_path):
        s = load_settings(tmp_path)
        assert s.returnable_invoice_statuses == ["ACCEPTED"]
        assert s.return_reasons[0] == "Defective product"

    def test_corrupt_file_falls_back(self, tmp_path):
        (tmp_path / "settings.json").write_text("{oops", encoding="utf-8")
        assert load_settings(tmp_path).money_tolerance == 0.01

    def test_unknown_keys_ignored(self, tmp_path):
        (tmp_path / "settings.json").write_text(
            json.dumps({"numbering": {"invoice_prefix": "F-"}, "legacy": True}), encoding="utf-8",
        )
        s = load_settings(tmp_path)
        assert s.numbering.invoice_prefix == "F-"
        assert s.numbering.quote_prefix == "COT-"


class TestLogging:
    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("SALESFLOW_LOG_LEVEL", "warning")
        configure_logging()
        assert logging.getLogger("salesflow").level == logging.WARNING
        configure_logging("debug")
        assert logging.getLogger("salesflow").level == logging.DEBUG

    def test_level_from_settings_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SALESFLOW_LOG_LEVEL", raising=False)
        (tmp_path / "settings.json").write_text(json.dumps({"log_level": "ERROR"}), encoding="utf-8")
        configure_logging(data_dir=tmp_path)
        assert logging.getLogger("salesflow").level == logging.ERROR

    def test_argument_wins_over_settings(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SALESFLOW_LOG_LEVEL", raising=False)
        (tmp_path / "settings.json").write_text(json.dumps({"log_level": "ERROR"}), encoding="utf-8")
        configure_logging("info", data_dir=tmp_path)
        assert logging.getLogger("salesflow").level == logging.INFO
