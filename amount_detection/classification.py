# amount_detection/classification.py
"""
Step 3: Classification Service
Label normalized amounts by their role on the bill (total, paid, due, ...)
"""
import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Pattern, Set, Tuple

from .config import Settings, get_settings
from .models import ClassificationOutput, ClassifiedAmount, MULTI_ALLOWED_TYPES
from .utils import find_amount_span

logger = logging.getLogger(__name__)

# Optional currency marker and the captured number used by every rule pattern
CUR = r'(?:inr|rs\.?|₹|\$|€)?'
NUM = r'([0-9,]+(?:\.[0-9]{2})?)(?![\d.,]*\s*%)'
# Parenthetical rate such as "(9%)" between a label and its amount
RATE = r'(?:\s*\([^)]*\))?'


@dataclass(frozen=True)
class ClassificationRule:
    """One row of the classification table"""
    type: str
    keywords: Tuple[str, ...]
    patterns: Tuple[Pattern, ...]
    priority: int


def _rule(amount_type: str, keywords: List[str], patterns: List[str], priority: int) -> ClassificationRule:
    return ClassificationRule(
        type=amount_type,
        keywords=tuple(keywords),
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        priority=priority,
    )


# Evaluated in order; priority only weights confidence
CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    _rule(
        'total_bill',
        ['total', 'grand total', 'amount', 'sum', 'bill amount', 'invoice total'],
        [
            rf'total[:\s]*(?:amount[:\s]*)?{CUR}\s*{NUM}',
            rf'(?:grand|final|net)\s*total[:\s]*{CUR}\s*{NUM}',
            rf'bill\s*amount[:\s]*{CUR}\s*{NUM}',
        ],
        10,
    ),
    _rule(
        'paid',
        ['paid', 'payment', 'received', 'cash received', 'amount paid'],
        [
            rf'paid[:\s]*(?:amount[:\s]*)?{CUR}\s*{NUM}',
            rf'payment[:\s]*{CUR}\s*{NUM}',
            rf'(?:cash\s*)?received[:\s]*{CUR}\s*{NUM}',
            rf'amount\s*paid[:\s]*{CUR}\s*{NUM}',
            rf'amt\s*paid[:\s]*{CUR}\s*{NUM}',
            rf'net\s*paid[:\s]*{CUR}\s*{NUM}',
            rf'amount\s*(?:recd|received)[:\s]*{CUR}\s*{NUM}',
        ],
        8,
    ),
    _rule(
        'due',
        ['due', 'balance', 'pending', 'outstanding', 'remaining', 'patient balance', 'amount due'],
        [
            rf'(?:amount\s*)?due[:\s]*{CUR}\s*{NUM}',
            rf'(?<!insurance )(?<!previous )(?<!prior )(?:patient\s*)?balance[:\s]*{CUR}\s*{NUM}',
            rf'(?:amount\s*)?pending[:\s]*{CUR}\s*{NUM}',
            rf'pay\s*this\s*amount[:\s]*{CUR}\s*{NUM}',
        ],
        7,
    ),
    _rule(
        'insurance_balance',
        ['insurance balance', 'insurance', 'coverage'],
        [
            rf'insurance\s*balance[:\s]*{CUR}\s*{NUM}',
        ],
        8,
    ),
    _rule(
        'previous_balance',
        ['previous balance', 'prior balance', 'opening balance'],
        [
            rf'previous\s*balance[:\s]*{CUR}\s*{NUM}',
            rf'prior\s*balance[:\s]*{CUR}\s*{NUM}',
        ],
        6,
    ),
    _rule(
        'discount',
        ['discount', 'off', 'reduction', 'deduction', 'rebate'],
        [
            rf'discount{RATE}[:\s]*{CUR}\s*{NUM}',
            rf'(?:flat\s*)?{NUM}\s*{CUR}\s*off\b',
        ],
        6,
    ),
    _rule(
        'tax',
        ['tax', 'gst', 'vat', 'cgst', 'sgst', 'igst', 'service tax'],
        [
            rf'(?:gst|vat|tax){RATE}[:\s]*{CUR}\s*{NUM}',
            rf'(?:cgst|sgst|igst){RATE}[:\s]*{CUR}\s*{NUM}',
            rf'service\s*tax{RATE}[:\s]*{CUR}\s*{NUM}',
        ],
        5,
    ),
    _rule(
        'consultation_fee',
        ['consultation', 'doctor fee', 'consultation fee', 'visit charge'],
        [
            rf'consultation[:\s]*(?:fee[:\s]*)?{CUR}\s*{NUM}',
            rf'doctor\s*fee[:\s]*{CUR}\s*{NUM}',
            rf'visit\s*charges?[:\s]*{CUR}\s*{NUM}',
        ],
        4,
    ),
    _rule(
        'medicine_cost',
        ['medicine', 'medication', 'drugs', 'pharmacy', 'prescription'],
        [
            rf'medicines?[:\s]*(?:cost[:\s]*)?{CUR}\s*{NUM}',
            rf'medications?[:\s]*{CUR}\s*{NUM}',
            rf'pharmacy[:\s]*{CUR}\s*{NUM}',
        ],
        3,
    ),
    _rule(
        'test_charges',
        ['test', 'lab', 'investigation', 'pathology', 'scan', 'x-ray'],
        [
            rf'(?:lab\s*)?tests?[:\s]*(?:charges[:\s]*)?{CUR}\s*{NUM}',
            rf'(?:pathology|investigation)s?[:\s]*{CUR}\s*{NUM}',
            rf'(?:scan|x-ray)[:\s]*{CUR}\s*{NUM}',
        ],
        2,
    ),
)

# (lower bound, type, confidence), first match wins
MAGNITUDE_BANDS = (
    (1000, 'total_bill', 0.6),
    (500, 'consultation_fee', 0.55),
    (100, 'medicine_cost', 0.5),
    (10, 'test_charges', 0.45),
)

FALLBACK_TYPE = 'other_amount'
FALLBACK_CONFIDENCE = 0.3

INVOICE_NUMBER = re.compile(r'invoice\s*(?:no\.?|number|num)?\s*[:#]?\s*#?\s*(\d{1,6})\b', re.IGNORECASE)


def _clamp(confidence: float) -> float:
    return round(max(0.1, min(0.95, confidence)), 2)


class ClassificationService:
    """Rule-driven classifier: pattern pass, keyword-context pass, magnitude fallback"""

    def __init__(self, settings: Optional[Settings] = None,
                 rules: Tuple[ClassificationRule, ...] = CLASSIFICATION_RULES):
        self.settings = settings or get_settings()
        self.rules = rules

    def keywords_for(self, amount_type: str) -> Tuple[str, ...]:
        for rule in self.rules:
            if rule.type == amount_type:
                return rule.keywords
        return ()

    def filter_reference_numbers(self, text: str, amounts: List[float]) -> List[float]:
        """Drop a small invoice number so it is not read as money"""
        match = INVOICE_NUMBER.search(text)
        if match:
            invoice_number = float(match.group(1))
            if invoice_number < self.settings.invoice_number_limit:
                logger.debug(f"Ignoring invoice number {invoice_number:g}")
                return [a for a in amounts if a != invoice_number]
        return amounts

    def find_closest_amount(self, target: float, amounts: List[float], used: Set[int]) -> Optional[int]:
        """
        Index of the unused amount nearest to target.

        An exact match always wins; otherwise the smallest difference within
        the relative tolerance. Returns None when nothing is close enough.
        """
        available = [i for i in range(len(amounts)) if i not in used]

        for i in available:
            if amounts[i] == target:
                return i

        tolerance = target * self.settings.match_tolerance
        closest = None
        smallest_difference = float('inf')
        for i in available:
            difference = abs(amounts[i] - target)
            if difference <= tolerance and difference < smallest_difference:
                closest = i
                smallest_difference = difference

        return closest

    def calculate_match_confidence(self, matched_value: float, actual_amount: float, priority: int) -> float:
        """Priority-weighted confidence, penalized when the text value and the amount disagree"""
        confidence = 0.7 + (priority / 10) * 0.2

        difference = abs(matched_value - actual_amount)
        if difference > matched_value * self.settings.mismatch_tolerance:
            confidence -= min(0.25, (difference / matched_value) * 0.4)

        return _clamp(confidence)

    @staticmethod
    def _parse_number(raw: str) -> Optional[float]:
        try:
            return float(raw.replace(',', ''))
        except ValueError:
            return None

    def classify_by_patterns(self, text: str, amounts: List[float], used: Set[int]) -> List[ClassifiedAmount]:
        """Pass 1: every rule pattern over the full text"""
        classified = []

        for rule in self.rules:
            for pattern in rule.patterns:
                for match in pattern.finditer(text):
                    matched_value = self._parse_number(match.group(1))
                    if matched_value is None or matched_value <= 0:
                        continue

                    index = self.find_closest_amount(matched_value, amounts, used)
                    if index is None:
                        continue

                    used.add(index)
                    classified.append(ClassifiedAmount(
                        type=rule.type,
                        value=amounts[index],
                        confidence=self.calculate_match_confidence(matched_value, amounts[index], rule.priority),
                        context=f"pattern: '{match.group(0).strip()}'"
                    ))

        return classified

    def classify_by_context(self, text: str, amount: float) -> ClassifiedAmount:
        """Pass 2: keywords near the amount's first occurrence, else magnitude"""
        span = find_amount_span(text, amount)
        if span is None:
            return self.classify_by_magnitude(amount)

        window = self.settings.context_window
        start = max(0, span[0] - window)
        end = min(len(text), span[1] + window)
        context = text[start:end].lower()

        for rule in self.rules:
            for keyword in rule.keywords:
                if keyword.lower() in context:
                    return ClassifiedAmount(
                        type=rule.type,
                        value=amount,
                        confidence=_clamp(min(0.95, 0.75 + (10 - rule.priority) * 0.02)),
                        context=f"keyword: '{keyword}'"
                    )

        return self.classify_by_magnitude(amount)

    def classify_by_magnitude(self, amount: float) -> ClassifiedAmount:
        """Pass 3: typical bill ranges when nothing in the text helps"""
        for lower_bound, amount_type, confidence in MAGNITUDE_BANDS:
            if amount >= lower_bound:
                return ClassifiedAmount(type=amount_type, value=amount, confidence=confidence,
                                        context="magnitude")

        return ClassifiedAmount(type=FALLBACK_TYPE, value=amount, confidence=FALLBACK_CONFIDENCE,
                                context="magnitude")

    def post_process_classifications(self, classifications: List[ClassifiedAmount]) -> List[ClassifiedAmount]:
        """Keep the most confident label per type, then infer what is missing"""
        ordered = sorted(classifications, key=lambda c: c.confidence, reverse=True)

        processed = []
        types_seen = set()
        for classification in ordered:
            if classification.type in types_seen and classification.type not in MULTI_ALLOWED_TYPES:
                continue
            processed.append(classification)
            types_seen.add(classification.type)

        return self.infer_missing_amounts(processed)

    def infer_missing_amounts(self, processed: List[ClassifiedAmount]) -> List[ClassifiedAmount]:
        """paid = total_bill - due when a bill shows total and due but no payment"""
        if any(c.type == 'paid' for c in processed):
            return processed

        total = next((c for c in processed if c.type == 'total_bill'), None)
        due = next((c for c in processed if c.type == 'due'), None)
        if total is None or due is None:
            return processed

        difference = total.value - due.value
        if difference <= 0.01:
            return processed

        inferred_value = round(difference, 2)
        if any(c.value == inferred_value for c in processed):
            return processed

        confidence = min(0.9, round(((total.confidence + due.confidence) / 2) * 0.95, 2))
        logger.info(f"Inferred paid amount {inferred_value} from total {total.value} and due {due.value}")

        return processed + [ClassifiedAmount(
            type='paid',
            value=inferred_value,
            confidence=_clamp(confidence),
            inferred=True,
            context="inferred: total_bill - due"
        )]

    def process_amounts(self, text: str, amounts: List[float]) -> ClassificationOutput:
        """
        Main processing method for Step 3: Classification by Context
        """
        try:
            text = text or ""
            amounts = [float(a) for a in amounts if a > 0]
            logger.info(f"Starting classification of {len(amounts)} amounts")

            amounts = self.filter_reference_numbers(text, amounts)

            used: Set[int] = set()
            classified = self.classify_by_patterns(text, amounts, used)

            for index, amount in enumerate(amounts):
                if index not in used:
                    classified.append(self.classify_by_context(text, amount))

            processed = self.post_process_classifications(classified)

            confidence = sum(c.confidence for c in processed) / len(processed) if processed else 0.0

            logger.info(f"Classification completed: {len(processed)} amounts classified with confidence {confidence:.2f}")

            return ClassificationOutput(
                amounts=processed,
                confidence=round(confidence, 2)
            )

        except Exception as e:
            logger.error(f"Classification processing error: {e}, labeling all amounts unknown")
            return ClassificationOutput(
                amounts=[
                    ClassifiedAmount(type='unknown', value=a, confidence=0.1, context="classification error")
                    for a in amounts
                ],
                confidence=0.1
            )


# Singleton instance
classification_service = ClassificationService()
