# amount_detection/extraction.py
"""
Step 1: Token Extraction Service
Scan bill text for amount, currency and percentage tokens
"""
import re
import logging
from typing import List, Optional, Tuple

from .config import Settings, get_settings
from .models import OCROutput, NoAmountsResponse, ExtractionResult

logger = logging.getLogger(__name__)

Span = Tuple[int, int]

# Amount patterns in priority order: currency-prefixed, currency-suffixed, bare
AMOUNT_PATTERNS = [
    re.compile(r'(?:\bINR|\bRs\.?|₹)\s*([0-9,]+(?:\.[0-9]{2})?)', re.IGNORECASE),
    re.compile(r'([0-9,]+(?:\.[0-9]{2})?)\s*(?:INR\b|Rs\b\.?|₹)', re.IGNORECASE),
    re.compile(r'\b([0-9,]+(?:\.[0-9]{2})?)\b'),
]

PERCENTAGE_PATTERN = re.compile(r'([0-9]+(?:\.[0-9]+)?)\s*%')

CURRENCY_PATTERN = re.compile(r'\bINR\b|\bRs\b\.?|₹|\$|\bUSD\b|\bEUR\b|€', re.IGNORECASE)

# Canonical code for each currency symbol, keyed by upper-cased symbol
CURRENCY_CODES_BY_SYMBOL = {
    'INR': 'INR',
    'RS': 'INR',
    'RS.': 'INR',
    '₹': 'INR',
    '$': 'USD',
    'USD': 'USD',
    '€': 'EUR',
    'EUR': 'EUR',
}

DATE_PATTERNS = [
    re.compile(r'\b\d{4}[-/.]\d{1,2}[-/.]\d{1,2}\b'),
    re.compile(r'\b\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}\b'),
    re.compile(
        r'\b\d{1,2}[-\s](?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?[-\s,]*\d{2,4}\b',
        re.IGNORECASE,
    ),
]

BILLING_KEYWORDS = ('total', 'paid', 'due', 'tax', 'discount', 'bill', 'amount')


def _overlaps(span: Span, taken: List[Span]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in taken)


class TokenExtractionService:
    """Turns plain text into raw amount tokens, a currency hint and a confidence"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def normalize_currency(self, symbol: str) -> str:
        """Map a matched currency symbol to INR/USD/EUR, or UNKNOWN"""
        return CURRENCY_CODES_BY_SYMBOL.get(symbol.strip().upper(), 'UNKNOWN')

    def detect_currency(self, text: str) -> str:
        """Currency hint for the whole text, MIXED when codes disagree"""
        codes = set()
        for match in CURRENCY_PATTERN.finditer(text):
            code = self.normalize_currency(match.group(0))
            if code != 'UNKNOWN':
                codes.add(code)

        if len(codes) > 1:
            return 'MIXED'
        if len(codes) == 1:
            return codes.pop()
        return 'UNKNOWN'

    def _date_spans(self, text: str) -> List[Span]:
        if not self.settings.skip_dates:
            return []
        return [match.span() for pattern in DATE_PATTERNS for match in pattern.finditer(text)]

    def scan_tokens(self, text: str) -> List[str]:
        """
        Collect amount tokens then percentage tokens.

        A span of text yields at most one token; the first pattern that
        claims it wins. Bare numbers inside percentages or dates are skipped.
        """
        percentage_matches = list(PERCENTAGE_PATTERN.finditer(text))
        blocked = [m.span() for m in percentage_matches] + self._date_spans(text)

        tokens: List[str] = []
        taken: List[Span] = []
        for pattern in AMOUNT_PATTERNS:
            for match in pattern.finditer(text):
                span = match.span(1)
                if _overlaps(span, taken) or _overlaps(span, blocked):
                    continue
                token = match.group(1).strip(',')
                if not token:
                    continue
                taken.append(span)
                tokens.append(token)

        tokens.extend(m.group(0) for m in percentage_matches)
        return tokens

    @staticmethod
    def _token_value(token: str) -> Optional[float]:
        cleaned = re.sub(r'[,%\s]', '', token)
        try:
            return float(cleaned)
        except ValueError:
            return None

    def has_billing_keyword(self, text: str) -> bool:
        text_lower = text.lower()
        return any(keyword in text_lower for keyword in BILLING_KEYWORDS)

    def is_noise(self, token: str, text: str, currency_hint: str) -> bool:
        """Heuristic rejection of tokens that are unlikely to be money"""
        value = self._token_value(token)
        if value is None or value != value or value <= 0:
            return True

        digits = token.replace(',', '')
        if digits.isdigit() and len(digits) >= self.settings.phone_min_digits:
            if digits.startswith(self.settings.toll_free_prefixes):
                return True

        if value > self.settings.id_value_threshold and '.' not in token and currency_hint == 'UNKNOWN':
            return True

        if value < self.settings.min_keywordless_value and not self.has_billing_keyword(text):
            return True

        return False

    def calculate_extraction_confidence(self, tokens: List[str], text: str) -> float:
        """0.5 base, boosted by token count, currency symbols and billing words"""
        if not tokens:
            return 0.0

        confidence = 0.5
        confidence += min(len(tokens) * 0.1, 0.3)

        if CURRENCY_PATTERN.search(text):
            confidence += 0.2

        if self.has_billing_keyword(text):
            confidence += 0.1

        return min(confidence, 1.0)

    def process_text(self, text: str) -> ExtractionResult:
        """
        Main processing method for Step 1: Token Extraction

        Returns OCROutput, or NoAmountsResponse when nothing usable remains.
        """
        try:
            text = text or ""
            candidates = self.scan_tokens(text)
            currency_hint = self.detect_currency(text)

            if not candidates:
                logger.info("No numeric tokens found in text")
                return NoAmountsResponse(reason="no numeric tokens detected")

            tokens = [t for t in candidates if not self.is_noise(t, text, currency_hint)]
            logger.debug(f"Extraction kept {tokens} out of {candidates}")

            if not tokens:
                logger.info(f"All {len(candidates)} candidate tokens rejected as noise")
                return NoAmountsResponse(reason="document too noisy")

            confidence = self.calculate_extraction_confidence(tokens, text)
            logger.info(f"Extraction completed: {len(tokens)} tokens, currency {currency_hint}, confidence {confidence:.2f}")

            return OCROutput(
                raw_tokens=tokens,
                currency_hint=currency_hint,
                confidence=round(confidence, 2)
            )

        except Exception as e:
            logger.error(f"Token extraction error: {e}")
            return NoAmountsResponse(reason="text processing error")


# Singleton instance
extraction_service = TokenExtractionService()
