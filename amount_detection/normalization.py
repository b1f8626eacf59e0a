# amount_detection/normalization.py
"""
Step 2: Normalization
Fix OCR digit errors and map tokens to numbers with a confidence score
"""
import re
import logging
from typing import List, Optional, Union
from .models import NormalizationOutput, NormalizedAmount, PercentageInfo

logger = logging.getLogger(__name__)

CLEAN_AMOUNT = re.compile(r'^\d+(\.\d{2})?$')
LEADING_NUMBER = re.compile(r'^(\d+(?:\.\d+)?|\.\d+)')

# Number-shaped words: a digit, or I/l misread for 1, then digits and confusable letters
NUMBER_WORD = re.compile(r'\b[Il]?\d[\dOoIl,.]*\b')
ZERO_IN_WORD = re.compile(r'(?<=[A-Za-z])0(?=[A-Za-z])')

PERCENTAGE_CONFIDENCE = 0.9


class NormalizationService:
    """Turns raw tokens into numbers and scores how much repair each needed"""

    def __init__(self):
        # Letters tesseract confuses with digits
        self.ocr_digit_corrections = {
            'l': '1',
            'I': '1',
            'O': '0',
            'o': '0',
            'S': '5',
            's': '5',
            'Z': '2',
            'z': '2',
            'G': '6',
            'g': '9',
            'B': '8',
            'T': '7',
        }

        # Whole-word misreads that break keyword matching downstream
        self.word_fixups = [
            (re.compile(r'\bT0tal\b', re.IGNORECASE), 'Total'),
            (re.compile(r'\bTota1\b', re.IGNORECASE), 'Total'),
            (re.compile(r'\bPald\b', re.IGNORECASE), 'Paid'),
            (re.compile(r'\b0ue\b', re.IGNORECASE), 'Due'),
            (re.compile(r'\b(Rs\.?)\s*l(?=[\dOoIl])', re.IGNORECASE), r'\1 1'),
        ]

        # Per-token only, applied in order; the last one reads "12o50" as "12.050"
        self.numeric_repairs = [
            (re.compile(r'\bl(\d+)'), r'1\1'),
            (re.compile(r'(\d)O(\d)'), r'\g<1>0\g<2>'),
            (re.compile(r'I(\d)'), r'1\1'),
            (re.compile(r'1O'), '10'),
            (re.compile(r'O1'), '01'),
            (re.compile(r'(\d)[oO](\d{2})(?!\d)'), r'\1.0\2'),
        ]

    def apply_ocr_corrections(self, token: str) -> str:
        """Swap every confusable letter in a token for its digit"""
        corrected = token

        for wrong_char, correct_char in self.ocr_digit_corrections.items():
            corrected = corrected.replace(wrong_char, correct_char)

        return corrected

    def apply_word_fixups(self, text: str) -> str:
        fixed = text
        for pattern, replacement in self.word_fixups:
            fixed = pattern.sub(replacement, fixed)
        return fixed

    def repair_numeric_patterns(self, text: str) -> str:
        """Fix number shapes that OCR commonly misreads"""
        fixed = text
        for pattern, replacement in self.numeric_repairs:
            fixed = pattern.sub(replacement, fixed)
        return fixed

    def correct_text(self, text: str) -> str:
        """
        Repair OCR damage in a whole document without touching line structure.

        Keyword misreads ("T0tal", "Pald") are fixed so context matching works,
        zeros inside words become "o", and letter confusions are resolved only
        inside number-shaped words ("5OO" -> "500", "I50" -> "150"). The
        per-token shape repairs are not applied here: they can split a number
        ("12o50" -> "12.050") or rewrite ordinary words ("INFO1").
        """
        if not text:
            return ""

        corrected = self.apply_word_fixups(text)
        corrected = ZERO_IN_WORD.sub(self._zero_to_letter, corrected)
        corrected = NUMBER_WORD.sub(lambda m: self._translate_confusions(m.group(0)), corrected)

        if corrected != text:
            logger.debug(f"OCR text corrected: {text!r} -> {corrected!r}")
        return corrected

    @staticmethod
    def _zero_to_letter(match) -> str:
        source = match.string
        before = source[match.start() - 1]
        after = source[match.end()]
        return 'O' if before.isupper() and after.isupper() else 'o'

    @staticmethod
    def _translate_confusions(word: str) -> str:
        return word.replace('O', '0').replace('o', '0').replace('I', '1').replace('l', '1')

    def count_corrections(self, original: str, corrected: str) -> int:
        """Positions that differ, plus the length difference"""
        corrections = sum(1 for a, b in zip(original, corrected) if a != b)
        corrections += abs(len(original) - len(corrected))
        return corrections

    def calculate_normalization_confidence(self, original: str, corrected: str, value: float) -> float:
        """Calculate confidence score for a single normalized token"""
        confidence = 1.0

        confidence -= self.count_corrections(original, corrected) * 0.1

        if CLEAN_AMOUNT.match(corrected):
            confidence += 0.1

        if 1 <= value <= 1_000_000:
            confidence += 0.1

        # Very large numbers are usually misreads
        if value > 1_000_000:
            confidence -= 0.2

        return max(0.1, min(1.0, confidence))

    def convert_to_number(self, token: str) -> Optional[float]:
        """Leading number of a cleaned token, rounded to cents; None unless positive"""
        if not token:
            return None

        match = LEADING_NUMBER.match(token)
        if not match:
            return None

        number = round(float(match.group(1)), 2)
        if number != number or number <= 0:
            return None

        return number

    def normalize_token(self, token: str) -> Optional[Union[NormalizedAmount, PercentageInfo]]:
        """
        Normalize a single token.

        Percent tokens come back as PercentageInfo; everything else as a
        NormalizedAmount. Invalid tokens return None.
        """
        try:
            if '%' in token:
                percent_value = float(token.replace('%', '').replace(',', '').strip())
                if percent_value != percent_value:
                    return None
                return PercentageInfo(value=percent_value, confidence=PERCENTAGE_CONFIDENCE)

            corrected = self.apply_ocr_corrections(token)
            corrected = self.apply_word_fixups(corrected)
            corrected = self.repair_numeric_patterns(corrected)
            corrected = re.sub(r'[,\s]', '', corrected)

            value = self.convert_to_number(corrected)
            if value is None:
                logger.debug(f"Token '{token}' -> None (conversion failed)")
                return None

            confidence = self.calculate_normalization_confidence(token, corrected, value)
            logger.debug(f"Token '{token}' -> {value} (confidence {confidence:.2f})")

            return NormalizedAmount(value=value, confidence=round(confidence, 2))

        except Exception as e:
            logger.warning(f"Could not normalize token '{token}': {e}")
            return None

    def process_tokens(self, raw_tokens: List[str], currency_hint: Optional[str] = None) -> NormalizationOutput:
        """
        Normalize every token from the extraction step.

        Args:
            raw_tokens: List of raw tokens from the extraction step
            currency_hint: Currency from the extraction step; accepted for
                symmetry with the other stages and not used here

        Returns:
            NormalizationOutput with amounts, percentages and the mean confidence
        """
        try:
            logger.info(f"Starting normalization of {len(raw_tokens)} tokens")

            normalized_amounts = []
            percentages = []
            confidences = []

            for token in raw_tokens:
                normalized = self.normalize_token(token)

                if normalized is None:
                    continue

                if isinstance(normalized, PercentageInfo):
                    percentages.append(normalized)
                else:
                    normalized_amounts.append(normalized.value)
                    confidences.append(normalized.confidence)

            confidence = sum(confidences) / len(confidences) if confidences else 0.0

            logger.info(f"Normalization completed: {len(normalized_amounts)} amounts, {len(percentages)} percentages from {len(raw_tokens)} tokens")

            return NormalizationOutput(
                normalized_amounts=normalized_amounts,
                percentages=percentages,
                normalization_confidence=round(confidence, 2)
            )

        except Exception as e:
            logger.error(f"Normalization processing error: {e}")
            return NormalizationOutput(normalized_amounts=[], percentages=[], normalization_confidence=0.0)


# Singleton instance
normalization_service = NormalizationService()
