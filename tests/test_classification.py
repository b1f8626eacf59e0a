"""
Unit tests for amount classification.

Tests cover:
- classify_by_patterns() - direct label/amount matches and tolerance
- classify_by_context() - keyword window fallback
- classify_by_magnitude() - value bands
- post-processing - type uniqueness and paid inference
- process_amounts() - invoice numbers and call isolation
"""
import pytest

from amount_detection.classification import CLASSIFICATION_RULES, ClassificationService
from amount_detection.config import Settings


def _by_type(result):
    return {a.type: a for a in result.amounts}


class TestRuleTable:
    """Tests for the rule table itself."""

    @pytest.mark.unit
    def test_rules_are_immutable(self):
        with pytest.raises(AttributeError):
            CLASSIFICATION_RULES[0].priority = 1

    @pytest.mark.unit
    def test_first_rule_is_total(self):
        assert CLASSIFICATION_RULES[0].type == "total_bill"
        assert CLASSIFICATION_RULES[0].priority == 10

    @pytest.mark.unit
    def test_keywords_for(self, classifier):
        assert "gst" in classifier.keywords_for("tax")
        assert classifier.keywords_for("other_amount") == ()


class TestClassifyByPatterns:
    """Tests for classify_by_patterns()."""

    @pytest.mark.parametrize(
        "text,amount,expected_type",
        [
            ("Total: INR 1200", 1200, "total_bill"),
            ("Grand Total: Rs. 1500", 1500, "total_bill"),
            ("Bill Amount: 900", 900, "total_bill"),
            ("Amount Paid: 700", 700, "paid"),
            ("Cash received 650", 650, "paid"),
            ("Balance: 300", 300, "due"),
            ("Amount Due: ₹250", 250, "due"),
            ("Insurance Balance: 400", 400, "insurance_balance"),
            ("Previous Balance: 120", 120, "previous_balance"),
            ("Discount: 50", 50, "discount"),
            ("Flat 100 off", 100, "discount"),
            ("CGST (9%): 45", 45, "tax"),
            ("GST: 90", 90, "tax"),
            ("Doctor Fee: 600", 600, "consultation_fee"),
            ("Pharmacy: 350", 350, "medicine_cost"),
            ("X-Ray: 800", 800, "test_charges"),
        ],
    )
    @pytest.mark.unit
    def test_pattern_types(self, classifier, text, amount, expected_type):
        used = set()
        classified = classifier.classify_by_patterns(text, [amount], used)
        assert [c.type for c in classified] == [expected_type]
        assert used == {0}
        assert classified[0].context.startswith("pattern:")

    @pytest.mark.unit
    def test_percentage_is_not_a_discount_amount(self, classifier):
        assert classifier.classify_by_patterns("Discount: 10%", [10.0], set()) == []

    @pytest.mark.unit
    def test_near_value_matches_within_tolerance(self, classifier):
        classified = classifier.classify_by_patterns("Total: 1000", [1080.0], set())
        assert classified[0].type == "total_bill"
        assert classified[0].value == 1080.0
        # Outside the 5% mismatch band, so scored below an exact match
        assert classified[0].confidence < 0.9

    @pytest.mark.unit
    def test_value_outside_tolerance_is_not_matched(self, classifier):
        assert classifier.classify_by_patterns("Total: 1000", [1200.0], set()) == []

    @pytest.mark.unit
    def test_tolerance_comes_from_settings(self):
        classifier = ClassificationService(Settings(match_tolerance=0.25))
        classified = classifier.classify_by_patterns("Total: 1000", [1200.0], set())
        assert classified[0].value == 1200.0

    @pytest.mark.unit
    def test_exact_match_preferred_over_closer_index(self, classifier):
        used = set()
        classified = classifier.classify_by_patterns("Due: 200", [210.0, 200.0], used)
        assert classified[0].value == 200.0
        assert used == {1}

    @pytest.mark.unit
    def test_confidence_follows_priority(self, classifier):
        total = classifier.classify_by_patterns("Total: 100", [100.0], set())[0]
        tests = classifier.classify_by_patterns("Lab Tests: 100", [100.0], set())[0]
        assert total.confidence == 0.9
        assert tests.confidence == 0.74


class TestClassifyByContext:
    """Tests for classify_by_context()."""

    @pytest.mark.unit
    def test_keyword_in_window(self, classifier):
        result = classifier.classify_by_context("Pharmacy items billed separately 450", 450.0)
        assert result.type == "medicine_cost"
        assert result.confidence == 0.89
        assert result.context == "keyword: 'pharmacy'"

    @pytest.mark.unit
    def test_keyword_outside_window_is_ignored(self, classifier):
        text = "Pharmacy" + " " * 80 + "450"
        result = classifier.classify_by_context(text, 450.0)
        assert result.context == "magnitude"

    @pytest.mark.unit
    def test_window_comes_from_settings(self):
        classifier = ClassificationService(Settings(context_window=100))
        text = "Pharmacy" + " " * 80 + "450"
        assert classifier.classify_by_context(text, 450.0).type == "medicine_cost"

    @pytest.mark.unit
    def test_amount_missing_from_text_uses_magnitude(self, classifier):
        assert classifier.classify_by_context("nothing here", 2500.0).context == "magnitude"


class TestClassifyByMagnitude:
    """Tests for classify_by_magnitude()."""

    @pytest.mark.parametrize(
        "amount,expected_type,expected_confidence",
        [
            (1500, "total_bill", 0.6),
            (1000, "total_bill", 0.6),
            (700, "consultation_fee", 0.55),
            (150, "medicine_cost", 0.5),
            (50, "test_charges", 0.45),
            (5, "other_amount", 0.3),
        ],
    )
    @pytest.mark.unit
    def test_bands(self, classifier, amount, expected_type, expected_confidence):
        result = classifier.classify_by_magnitude(amount)
        assert result.type == expected_type
        assert result.confidence == expected_confidence


class TestProcessAmounts:
    """Tests for process_amounts()."""

    @pytest.mark.unit
    def test_clean_bill(self, classifier, clean_bill):
        result = classifier.process_amounts(clean_bill, [500, 300, 200, 1000, 800, 200])
        amounts = _by_type(result)

        assert len(result.amounts) == 6
        assert amounts["total_bill"].value == 1000
        assert amounts["paid"].value == 800
        assert amounts["due"].value == 200
        assert amounts["consultation_fee"].value == 500
        assert amounts["medicine_cost"].value == 200
        assert amounts["test_charges"].value == 300
        assert result.confidence == 0.81

    @pytest.mark.unit
    def test_sorted_by_confidence(self, classifier, clean_bill):
        result = classifier.process_amounts(clean_bill, [500, 300, 200, 1000, 800, 200])
        confidences = [a.confidence for a in result.amounts]
        assert confidences == sorted(confidences, reverse=True)

    @pytest.mark.unit
    def test_paid_inferred_from_total_and_due(self, classifier):
        result = classifier.process_amounts("Total: 1000\nDue: 200", [1000, 200])
        paid = _by_type(result)["paid"]
        assert paid.value == 800
        assert paid.inferred is True
        assert 0.8 <= paid.confidence <= 0.85

    @pytest.mark.unit
    def test_no_inference_when_paid_present(self, classifier):
        result = classifier.process_amounts("Total: 1000\nPaid: 700\nDue: 200", [1000, 700, 200])
        paid = [a for a in result.amounts if a.type == "paid"]
        assert len(paid) == 1
        assert paid[0].value == 700
        assert paid[0].inferred is None

    @pytest.mark.unit
    def test_no_inference_when_due_exceeds_total(self, classifier):
        result = classifier.process_amounts("Total: 100\nDue: 200", [100, 200])
        assert "paid" not in _by_type(result)

    @pytest.mark.unit
    def test_single_value_types_are_unique(self, classifier):
        result = classifier.process_amounts("Total: 1000\nTotal: 990", [1000, 990])
        assert [a.type for a in result.amounts].count("total_bill") == 1
        assert result.amounts[0].value == 1000

    @pytest.mark.unit
    def test_multi_allowed_types_repeat(self, classifier):
        result = classifier.process_amounts("Medicine: 200\nMedicine: 150", [200, 150])
        assert [a.type for a in result.amounts] == ["medicine_cost", "medicine_cost"]

    @pytest.mark.unit
    def test_small_invoice_number_dropped(self, classifier):
        result = classifier.process_amounts("Invoice No: 123\nTotal: 500", [123, 500])
        assert [a.value for a in result.amounts] == [500]

    @pytest.mark.unit
    def test_large_invoice_number_kept(self, classifier):
        amounts = classifier.filter_reference_numbers("Invoice No: 4521\nTotal: 500", [4521.0, 500.0])
        assert amounts == [4521.0, 500.0]

    @pytest.mark.parametrize(
        "text",
        ["Invoice No: 123", "Invoice #123", "Invoice Number: 123", "INVOICE: 123"],
    )
    @pytest.mark.unit
    def test_invoice_number_formats(self, classifier, text):
        assert classifier.filter_reference_numbers(text, [123.0, 500.0]) == [500.0]

    @pytest.mark.unit
    def test_empty_amounts(self, classifier):
        result = classifier.process_amounts("Total: 1000", [])
        assert result.amounts == []
        assert result.confidence == 0.0

    @pytest.mark.unit
    def test_repeated_calls_do_not_share_state(self, classifier, clean_bill):
        amounts = [500, 300, 200, 1000, 800, 200]
        first = classifier.process_amounts(clean_bill, amounts)
        second = classifier.process_amounts(clean_bill, amounts)
        assert first == second

    @pytest.mark.unit
    def test_unexpected_failure_labels_everything_unknown(self, classifier, monkeypatch):
        def boom(text, amounts, used):
            raise RuntimeError("rule table exploded")

        monkeypatch.setattr(classifier, "classify_by_patterns", boom)
        result = classifier.process_amounts("Total 100\nDue 40", [100.0, 40.0])

        assert [(a.type, a.value, a.confidence) for a in result.amounts] == [
            ("unknown", 100.0, 0.1),
            ("unknown", 40.0, 0.1),
        ]
        assert result.confidence == 0.1
