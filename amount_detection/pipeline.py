# amount_detection/pipeline.py
"""
Amount detection pipeline
Extraction -> Normalization -> Classification -> Final output with provenance
"""
import logging
from datetime import datetime
from typing import Optional

from .config import Settings, get_settings
from .classification import ClassificationService
from .exceptions import OCRError
from .extraction import TokenExtractionService
from .models import NoAmountsResponse, ResponseModel
from .normalization import NormalizationService
from .utils import UtilityService, normalize_ocr_confidence

logger = logging.getLogger(__name__)


class AmountDetectionService:
    """Runs the four steps for one document; holds no per-request state"""

    def __init__(self,
                 settings: Optional[Settings] = None,
                 extraction: Optional[TokenExtractionService] = None,
                 normalization: Optional[NormalizationService] = None,
                 classification: Optional[ClassificationService] = None,
                 utility: Optional[UtilityService] = None):
        self.settings = settings or get_settings()
        self.extraction = extraction or TokenExtractionService(self.settings)
        self.normalization = normalization or NormalizationService()
        self.classification = classification or ClassificationService(self.settings)
        self.utility = utility or UtilityService(self.settings)

    def process_text(self, text: str) -> ResponseModel:
        """Detect amounts in typed or pasted bill text"""
        try:
            logger.info(f"Processing text input ({len(text or '')} characters)")
            return self._run_pipeline(text or "", ocr_confidence=0.0)

        except Exception as e:
            logger.error(f"Unexpected error during text processing: {e}", exc_info=True)
            return self.utility.create_error_response("Failed to process text", str(e))

    def process_image(self, extracted_text: str, ocr_confidence: float) -> ResponseModel:
        """
        Detect amounts in text recognized from an image.

        Args:
            extracted_text: Text returned by the OCR engine
            ocr_confidence: Engine confidence on a 0-100 or 0-1 scale
        """
        try:
            if not extracted_text or not extracted_text.strip():
                return self.utility.create_no_amounts_response("no text detected in image")

            result = self._run_pipeline(extracted_text, normalize_ocr_confidence(ocr_confidence))

            if isinstance(result, NoAmountsResponse):
                return self.utility.create_no_amounts_response("no amounts found in OCR text")
            return result

        except Exception as e:
            logger.error(f"Unexpected error during image processing: {e}", exc_info=True)
            return self.utility.create_error_response("Failed to process image", str(e))

    async def process_image_bytes(self, image_data: bytes, engine, timeout: Optional[float] = None) -> ResponseModel:
        """Recognize an image with the given OCR engine, then run the pipeline"""
        if engine is None:
            logger.error("Image received but no OCR engine is available")
            return self.utility.create_no_amounts_response("image processing error")

        try:
            text, confidence = await engine.recognize(image_data, timeout=timeout)
        except OCRError as e:
            logger.error(f"OCR failed: {e}")
            return self.utility.create_no_amounts_response("image processing error")

        return self.process_image(text, confidence)

    def _run_pipeline(self, text: str, ocr_confidence: float) -> ResponseModel:
        started = datetime.now()

        corrected_text = self.normalization.correct_text(text)

        # === Step 1: Token Extraction ===
        extraction_result = self.extraction.process_text(corrected_text)
        if isinstance(extraction_result, NoAmountsResponse):
            logger.info(f"Step 1 found no amounts: {extraction_result.reason}")
            return extraction_result

        logger.info(f"Step 1 completed: {len(extraction_result.raw_tokens)} tokens, confidence {extraction_result.confidence}")

        # === Step 2: Normalization ===
        normalization_result = self.normalization.process_tokens(
            extraction_result.raw_tokens,
            extraction_result.currency_hint
        )
        if not normalization_result.normalized_amounts:
            logger.info("Step 2 produced no monetary amounts")
            return self.utility.create_no_amounts_response("document too noisy")

        logger.info(f"Step 2 completed: {len(normalization_result.normalized_amounts)} amounts, confidence {normalization_result.normalization_confidence}")

        # === Step 3: Classification ===
        classification_result = self.classification.process_amounts(
            corrected_text,
            normalization_result.normalized_amounts
        )

        logger.info(f"Step 3 completed: {len(classification_result.amounts)} amounts classified, confidence {classification_result.confidence}")

        # === Step 4: Final Output ===
        keywords_by_type = {rule.type: rule.keywords for rule in self.classification.rules}
        final_output = self.utility.generate_final_output(
            corrected_text,
            classification_result.amounts,
            extraction_result.currency_hint,
            normalization_result,
            ocr_confidence,
            keywords_by_type
        )

        processing_time = (datetime.now() - started).total_seconds()
        logger.info(f"Step 4 completed: final output generated in {processing_time:.3f}s")

        return final_output


# Singleton instance
amount_detection_service = AmountDetectionService()
