"""
End-to-end tests for the amount detection pipeline.

Tests cover:
- process_text() - bill scenarios from clean and OCR-damaged input
- process_image() - OCR text with engine confidence
- process_image_bytes() - engine wiring, missing engine and OCR failures
"""
import asyncio

import pytest

from amount_detection.exceptions import OCRTimeoutError
from amount_detection.models import ErrorResponse, FinalOutput, NoAmountsResponse


def _by_type(result):
    return {a.type: a for a in result.amounts}


class FakeEngine:
    """Stands in for OCREngine; returns canned text or raises."""

    def __init__(self, text="", confidence=0.0, error=None):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls = 0

    async def recognize(self, image_data, timeout=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text, self.confidence


class TestProcessText:
    """Tests for process_text()."""

    @pytest.mark.unit
    def test_clean_bill(self, pipeline, clean_bill):
        result = pipeline.process_text(clean_bill)
        assert isinstance(result, FinalOutput)
        assert result.status == "ok"
        assert result.currency == "INR"

        amounts = _by_type(result)
        assert len(result.amounts) == 6
        assert amounts["total_bill"].value == 1000
        assert amounts["paid"].value == 800
        assert amounts["due"].value == 200
        assert amounts["consultation_fee"].value == 500
        assert amounts["medicine_cost"].value == 200
        assert amounts["test_charges"].value == 300
        assert [p.value for p in result.percentages] == [10]
        assert result.confidence == 0.74

    @pytest.mark.unit
    def test_clean_bill_provenance(self, pipeline, clean_bill):
        amounts = _by_type(pipeline.process_text(clean_bill))
        assert amounts["total_bill"].source == "text: 'Total: INR 1000'"
        assert amounts["due"].source == "text: 'Due: INR 200'"
        assert amounts["medicine_cost"].source == "text: 'Medicines: INR 200'"
        assert amounts["test_charges"].source == "text: 'Lab Tests: INR 300'"

    @pytest.mark.unit
    def test_ocr_damaged_bill(self, pipeline, ocr_bill):
        result = pipeline.process_text(ocr_bill)
        assert isinstance(result, FinalOutput)
        assert result.currency == "INR"

        amounts = _by_type(result)
        assert amounts["total_bill"].value == 1200.0
        assert amounts["paid"].value == 1000
        assert amounts["due"].value == 200
        assert amounts["total_bill"].source == "text: 'Total: Rs 1200 | Paid: 1000 | Due: 200'"

    @pytest.mark.parametrize(
        "text,reason",
        [
            ("", "no numeric tokens detected"),
            ("Thank you for visiting", "no numeric tokens detected"),
            ("Room 5", "document too noisy"),
            ("Discount 10%", "document too noisy"),
        ],
    )
    @pytest.mark.unit
    def test_no_amounts(self, pipeline, text, reason):
        result = pipeline.process_text(text)
        assert isinstance(result, NoAmountsResponse)
        assert result.status == "no_amounts_found"
        assert result.reason == reason

    @pytest.mark.unit
    def test_invoice_reference_is_not_money(self, pipeline):
        result = pipeline.process_text("Invoice No: AP2024001\nTotal: INR 500")
        values = [a.value for a in result.amounts]
        assert values == [500]

    @pytest.mark.unit
    def test_misread_decimal_is_one_amount(self, pipeline):
        result = pipeline.process_text("Amount: 12o50")
        assert isinstance(result, FinalOutput)
        assert [a.value for a in result.amounts] == [12050]

    @pytest.mark.unit
    def test_mixed_currency(self, pipeline):
        result = pipeline.process_text("$100 ₹200")
        assert isinstance(result, FinalOutput)
        assert result.currency == "MIXED"

    @pytest.mark.unit
    def test_inferred_paid(self, pipeline):
        result = pipeline.process_text("Total: INR 1000\nDue: INR 200")
        paid = _by_type(result)["paid"]
        assert paid.value == 800
        assert paid.inferred is True
        assert paid.source == "text: 'amount 800 detected'"

    @pytest.mark.unit
    def test_unexpected_failure_becomes_error(self, pipeline, clean_bill, monkeypatch):
        def boom(text):
            raise RuntimeError("extractor exploded")

        monkeypatch.setattr(pipeline.extraction, "process_text", boom)
        result = pipeline.process_text(clean_bill)

        assert isinstance(result, ErrorResponse)
        assert result.status == "error"
        assert result.message == "Failed to process text"
        assert result.details == "extractor exploded"


class TestProcessImage:
    """Tests for process_image() and process_image_bytes()."""

    @pytest.mark.unit
    def test_empty_ocr_text(self, pipeline):
        result = pipeline.process_image("   ", 90.0)
        assert result.reason == "no text detected in image"

    @pytest.mark.unit
    def test_ocr_text_without_amounts(self, pipeline):
        result = pipeline.process_image("Thank you for visiting", 80.0)
        assert result.reason == "no amounts found in OCR text"

    @pytest.mark.unit
    def test_ocr_confidence_is_blended(self, pipeline, clean_bill):
        result = pipeline.process_image(clean_bill, 90.0)
        assert isinstance(result, FinalOutput)
        assert result.confidence == 0.87

    @pytest.mark.unit
    def test_image_bytes_use_engine(self, pipeline, ocr_bill):
        engine = FakeEngine(text=ocr_bill, confidence=85.0)
        result = asyncio.run(pipeline.process_image_bytes(b"image", engine))

        assert engine.calls == 1
        assert isinstance(result, FinalOutput)
        assert _by_type(result)["total_bill"].value == 1200.0

    @pytest.mark.unit
    def test_missing_engine(self, pipeline):
        result = asyncio.run(pipeline.process_image_bytes(b"image", None))
        assert isinstance(result, NoAmountsResponse)
        assert result.reason == "image processing error"

    @pytest.mark.unit
    def test_engine_timeout(self, pipeline):
        engine = FakeEngine(error=OCRTimeoutError("Recognition exceeded 1s"))
        result = asyncio.run(pipeline.process_image_bytes(b"image", engine, timeout=1))
        assert isinstance(result, NoAmountsResponse)
        assert result.reason == "image processing error"
