# amount_detection/utils.py
"""
Utility functions for the Bill Amount Detection API
Provenance lookup, confidence blending and final output generation
"""
import re
import logging
from typing import Dict, List, Optional, Sequence, Tuple
from .config import Settings, get_settings
from .exceptions import InputTooLongError
from .models import (
    AmountInfo, FinalOutput, NoAmountsResponse, ErrorResponse, ClassifiedAmount,
    NormalizationOutput, AMOUNT_TYPES, CURRENCY_CODES, STATUSES, MULTI_ALLOWED_TYPES
)

logger = logging.getLogger(__name__)


def format_amount(value: float) -> str:
    """1200.0 -> '1200', 12.5 -> '12.5'"""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


def amount_literals(value: float) -> List[str]:
    """Ways an amount is commonly written on a bill"""
    value = float(value)
    literals = [format_amount(value), f"{value:.2f}", f"{value:,.2f}"]
    if value.is_integer():
        literals.append(f"{int(value):,}")

    unique = []
    for literal in literals:
        if literal not in unique:
            unique.append(literal)
    return unique


def _literal_pattern(literal: str):
    # Not part of a longer number on either side
    return re.compile(r'(?<!\d)(?<!\d[.,])' + re.escape(literal) + r'(?!\d)(?![.,]\d)')


def find_amount_span(text: str, value: float) -> Optional[Tuple[int, int]]:
    """Span of the earliest standalone occurrence of the amount in text"""
    best = None
    for literal in amount_literals(value):
        match = _literal_pattern(literal).search(text)
        if match and (best is None or match.start() < best[0]):
            best = match.span()
    return best


def normalize_ocr_confidence(confidence: Optional[float]) -> float:
    """OCR engines report 0-100 or 0-1; always return 0-1"""
    if confidence is None:
        return 0.0
    confidence = float(confidence)
    if confidence != confidence:
        return 0.0
    if confidence > 1.0:
        confidence = confidence / 100.0
    return max(0.0, min(1.0, confidence))


class UtilityService:
    """Provenance, confidence blending and final-result checks"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def find_source_context(self, original_text: str, amount: float, keywords: Sequence[str] = ()) -> str:
        """
        Find the source text for an amount with provenance

        Args:
            original_text: Document text
            amount: Value to look for
            keywords: Words for the amount's type; a line containing one
                is preferred when several lines show the same number

        Returns:
            "text: '<line or snippet>'"
        """
        try:
            patterns = [_literal_pattern(literal) for literal in amount_literals(amount)]

            candidates = [
                line.strip() for line in original_text.splitlines()
                if any(pattern.search(line) for pattern in patterns)
            ]
            if candidates:
                for line in candidates:
                    line_lower = line.lower()
                    if any(keyword.lower() in line_lower for keyword in keywords):
                        return f"text: '{line}'"
                return f"text: '{candidates[0]}'"

            # Looser word-boundary search across line breaks
            match = re.search(rf'\b{re.escape(format_amount(amount))}\b', original_text)
            if match:
                window = self.settings.provenance_window
                start = max(0, match.start() - window)
                end = min(len(original_text), match.end() + window)
                context = original_text[start:end].strip()
                return f"text: '{context}'"

        except Exception as e:
            logger.warning(f"Provenance lookup failed for {amount}: {e}")

        return f"text: 'amount {format_amount(amount)} detected'"

    def blend_confidence(self, amount_confidences: List[float],
                         normalization_confidence: float, ocr_confidence: float) -> float:
        """60% classification, 25% normalization, 15% OCR"""
        amount_average = sum(amount_confidences) / len(amount_confidences) if amount_confidences else 0.0
        blended = amount_average * 0.6 + normalization_confidence * 0.25 + ocr_confidence * 0.15
        return round(blended, 2)

    def validate_final_output(self, output: FinalOutput) -> Tuple[bool, List[str]]:
        """
        Check the invariants of a final result

        Returns:
            (is_valid, list_of_errors)
        """
        errors = []

        if output.currency not in CURRENCY_CODES:
            errors.append(f"Currency must be one of {CURRENCY_CODES}")

        if output.status not in STATUSES:
            errors.append(f"Status must be one of {STATUSES}")

        types_seen = set()
        for i, amount_info in enumerate(output.amounts):
            if amount_info.value <= 0:
                errors.append(f"Amount {i}: value must be positive")

            if amount_info.type not in AMOUNT_TYPES:
                errors.append(f"Amount {i}: unknown type '{amount_info.type}'")

            if not 0.1 <= amount_info.confidence <= 0.95:
                errors.append(f"Amount {i}: confidence {amount_info.confidence} out of range")

            if not amount_info.source:
                errors.append(f"Amount {i}: source is required")

            if amount_info.type in types_seen and amount_info.type not in MULTI_ALLOWED_TYPES:
                errors.append(f"Amount {i}: duplicate type '{amount_info.type}'")
            types_seen.add(amount_info.type)

        return len(errors) == 0, errors

    def create_no_amounts_response(self, reason: str) -> NoAmountsResponse:
        return NoAmountsResponse(reason=reason)

    def create_error_response(self, message: str, details: Optional[str] = None) -> ErrorResponse:
        return ErrorResponse(message=message, details=details)

    def generate_final_output(self,
                              original_text: str,
                              classified_amounts: List[ClassifiedAmount],
                              currency: str,
                              normalization_result: NormalizationOutput,
                              ocr_confidence: float = 0.0,
                              keywords_by_type: Optional[Dict[str, Sequence[str]]] = None) -> FinalOutput:
        """
        Assemble the final result (step 4)

        Args:
            original_text: Text the amounts were classified against
            classified_amounts: Amounts from step 3
            currency: Currency hint from step 1
            normalization_result: Output of step 2 (confidence and percentages)
            ocr_confidence: Recognition confidence in 0-1, 0 for typed text
            keywords_by_type: Rule keywords used to pick the best source line

        Returns:
            FinalOutput with a blended confidence
        """
        logger.debug(f"Assembling result for {len(classified_amounts)} amounts")
        keywords_by_type = keywords_by_type or {}

        amounts_output = []
        for classified_amount in classified_amounts:
            source_context = self.find_source_context(
                original_text,
                classified_amount.value,
                keywords_by_type.get(classified_amount.type, ())
            )

            amounts_output.append(AmountInfo(
                type=classified_amount.type,
                value=classified_amount.value,
                confidence=classified_amount.confidence,
                source=source_context,
                inferred=classified_amount.inferred
            ))

        confidence = self.blend_confidence(
            [a.confidence for a in amounts_output],
            normalization_result.normalization_confidence,
            ocr_confidence
        )

        result = FinalOutput(
            status="ok",
            currency=currency or "UNKNOWN",
            amounts=amounts_output,
            confidence=confidence,
            percentages=normalization_result.percentages or None
        )

        is_valid, validation_errors = self.validate_final_output(result)
        if not is_valid:
            # Logged only; the caller still gets the result
            for error in validation_errors:
                logger.error(f"Final result invalid: {error}")

        logger.info(f"Final output generated with {len(amounts_output)} amounts, confidence {confidence:.2f}")

        return result

    def sanitize_text_input(self, text: str) -> str:
        """
        Strip markup and control characters, keeping line breaks.

        Raises:
            InputTooLongError: cleaned text is longer than max_text_length
        """
        if not text:
            return ""

        cleaned = text.replace('\r\n', '\n').replace('\r', '\n')

        # Strip markup and script handlers
        cleaned = re.sub(r'[<>]', '', cleaned)
        cleaned = re.sub(r'javascript:', '', cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(r'\bon\w+\s*=', '', cleaned, flags=re.IGNORECASE)

        # Control characters other than newline and tab
        cleaned = re.sub(r'[\x00-\x08\x0b-\x1f\x7f]', '', cleaned)
        cleaned = cleaned.strip()

        max_length = self.settings.max_text_length
        if len(cleaned) > max_length:
            logger.warning(f"Rejected text input of {len(cleaned)} characters")
            raise InputTooLongError(f"Text input too long. Maximum length is {max_length:,} characters.")

        return cleaned


# Singleton instance
utility_service = UtilityService()
