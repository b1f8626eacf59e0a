"""
Pytest configuration and shared fixtures for amount detection tests.
"""
import pytest

from amount_detection.config import Settings
from amount_detection.classification import ClassificationService
from amount_detection.extraction import TokenExtractionService
from amount_detection.normalization import NormalizationService
from amount_detection.pipeline import AmountDetectionService
from amount_detection.utils import UtilityService


CLEAN_BILL = (
    "Consultation Fee: INR 500\n"
    "Lab Tests: INR 300\n"
    "Medicines: INR 200\n"
    "Total: INR 1000\n"
    "Paid: INR 800\n"
    "Due: INR 200\n"
    "Discount: 10%"
)

OCR_BILL = "T0tal: Rs l200 | Pald: 1000 | Due: 200"


@pytest.fixture
def test_settings() -> Settings:
    """Default settings, independent of the process environment."""
    return Settings()


@pytest.fixture
def extractor(test_settings: Settings) -> TokenExtractionService:
    return TokenExtractionService(test_settings)


@pytest.fixture
def normalizer() -> NormalizationService:
    return NormalizationService()


@pytest.fixture
def classifier(test_settings: Settings) -> ClassificationService:
    return ClassificationService(test_settings)


@pytest.fixture
def utility(test_settings: Settings) -> UtilityService:
    return UtilityService(test_settings)


@pytest.fixture
def pipeline(test_settings: Settings) -> AmountDetectionService:
    """Pipeline wired with fresh services built from test settings."""
    return AmountDetectionService(test_settings)


@pytest.fixture
def clean_bill() -> str:
    return CLEAN_BILL


@pytest.fixture
def ocr_bill() -> str:
    return OCR_BILL
