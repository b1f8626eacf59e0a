# amount_detection/__init__.py
"""
Bill Amount Detection Package
Extracts, normalizes and labels monetary amounts found in bill text or images
"""
import logging

__version__ = "1.0.0"
__author__ = "Bill Amount Detection Team"
__description__ = "Service that extracts and classifies monetary amounts from medical bills and receipts"

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Import main components for easy access
from .config import Settings, get_settings
from .exceptions import AmountDetectionError, InputTooLongError, OCRError, OCRTimeoutError, OCRUnavailableError
from .models import FinalOutput, NoAmountsResponse, ErrorResponse, OCROutput, NormalizationOutput, ClassificationOutput
from .extraction import extraction_service
from .normalization import normalization_service
from .classification import classification_service
from .ocr_service import OCREngine
from .pipeline import AmountDetectionService, amount_detection_service
from .utils import utility_service

__all__ = [
    "Settings",
    "get_settings",
    "AmountDetectionError",
    "InputTooLongError",
    "OCRError",
    "OCRTimeoutError",
    "OCRUnavailableError",
    "FinalOutput",
    "NoAmountsResponse",
    "ErrorResponse",
    "OCROutput",
    "NormalizationOutput",
    "ClassificationOutput",
    "extraction_service",
    "normalization_service",
    "classification_service",
    "OCREngine",
    "AmountDetectionService",
    "amount_detection_service",
    "utility_service",
]
