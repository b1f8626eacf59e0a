# amount_detection/ocr_service.py
"""
OCR collaborator: image bytes in, plain text and a confidence out
The pipeline only depends on OCREngine.recognize()
"""
import asyncio
import io
import logging
import re
from time import monotonic
from typing import Optional, Tuple

import cv2
import numpy as np
import pytesseract
from PIL import Image, UnidentifiedImageError

from .config import Settings, get_settings
from .exceptions import ImageDecodeError, OCRError, OCRTimeoutError, OCRUnavailableError

logger = logging.getLogger(__name__)

MIN_SIDE = 1500


class OCREngine:
    """
    Owned handle around the tesseract binary.

    Call start() before recognizing and close() when done; the FastAPI app
    does both in its startup and shutdown hooks.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.is_ready = False
        self.version: Optional[str] = None

    def start(self) -> None:
        """Check that tesseract is installed and mark the engine ready"""
        try:
            self.version = str(pytesseract.get_tesseract_version())
        except pytesseract.TesseractNotFoundError as e:
            raise OCRUnavailableError(f"Tesseract is not installed: {e}") from e

        self.is_ready = True
        logger.info(f"OCR engine started (tesseract {self.version})")

    def close(self) -> None:
        if self.is_ready:
            logger.info("OCR engine stopped")
        self.is_ready = False

    def preprocess_image(self, image_data: bytes) -> Image.Image:
        """Greyscale, stretch contrast and upscale small scans"""
        try:
            image = Image.open(io.BytesIO(image_data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ImageDecodeError(f"Could not decode image: {e}") from e

        if image.mode != 'RGB':
            image = image.convert('RGB')

        try:
            grey = cv2.cvtColor(np.array(image), cv2.COLOR_RGB2GRAY)
            grey = cv2.normalize(grey, None, 0, 255, cv2.NORM_MINMAX)

            height, width = grey.shape[:2]
            if width < MIN_SIDE or height < MIN_SIDE:
                scale = max(MIN_SIDE / width, MIN_SIDE / height)
                grey = cv2.resize(grey, (int(width * scale), int(height * scale)),
                                  interpolation=cv2.INTER_CUBIC)

            return Image.fromarray(grey)

        except cv2.error as e:
            logger.warning(f"Image preprocessing failed, using original: {e}")
            return image

    def extract_text_from_image(self, image_data: bytes, timeout: Optional[float] = None) -> Tuple[str, float]:
        """
        Run the configured tesseract modes and keep the best reading.

        All modes share one time budget; modes that would start after it is
        spent are skipped.

        Returns:
            (text, confidence) with confidence on tesseract's 0-100 scale
        """
        if not self.is_ready:
            raise OCRUnavailableError("OCR engine has not been started")

        timeout = timeout or self.settings.ocr_timeout
        deadline = monotonic() + timeout
        image = self.preprocess_image(image_data)

        best_text = ""
        best_score = -1.0
        best_confidence = 0.0

        attempted = 0
        for config in self.settings.tesseract_configs:
            remaining = deadline - monotonic()
            if remaining <= 0:
                logger.warning(f"OCR budget of {timeout}s spent, skipping mode '{config}' and later ones")
                break

            attempted += 1
            try:
                data = pytesseract.image_to_data(
                    image, lang=self.settings.ocr_language, config=config,
                    output_type=pytesseract.Output.DICT, timeout=remaining
                )
            except pytesseract.TesseractError as e:
                logger.warning(f"OCR config '{config}' failed: {e}")
                continue
            except RuntimeError as e:
                # pytesseract kills the process and raises RuntimeError on timeout
                raise OCRTimeoutError(f"Tesseract timed out after {timeout}s") from e

            text = self._text_from_data(data)
            confidences = [float(c) for c in data.get('conf', []) if float(c) > 0]
            avg_conf = sum(confidences) / len(confidences) if confidences else 0.0

            # Prefer readings that surface more amount-like numbers
            amount_count = len(re.findall(r'\d{3,}', text))
            score = avg_conf + amount_count * 10

            if score > best_score:
                best_score = score
                best_text = text
                best_confidence = avg_conf

        if attempted == 0:
            raise OCRTimeoutError(f"Image preprocessing used the whole {timeout}s budget")

        logger.info(f"OCR extracted {len(best_text)} characters with confidence {best_confidence:.1f}")
        return best_text, best_confidence

    @staticmethod
    def _text_from_data(data: dict) -> str:
        """Rebuild line-broken text from tesseract's word table"""
        lines = {}
        for i, word in enumerate(data.get('text', [])):
            if not word or not word.strip():
                continue
            key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(key, []).append(word.strip())
        return "\n".join(" ".join(words) for _, words in sorted(lines.items()))

    async def recognize(self, image_data: bytes, timeout: Optional[float] = None) -> Tuple[str, float]:
        """
        Bounded, cancellable recognition.

        Raises:
            OCRTimeoutError: recognition exceeded the timeout
            OCRError: image could not be decoded or tesseract failed
        """
        timeout = timeout or self.settings.ocr_timeout
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.extract_text_from_image, image_data, timeout),
                timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise OCRTimeoutError(f"Recognition exceeded {timeout}s") from e
        except OCRError:
            raise
        except Exception as e:
            raise OCRError(f"OCR processing failed: {e}") from e
