# amount_detection/models.py
"""
Pydantic models for every pipeline stage and the API boundary
"""
from pydantic import BaseModel, Field, validator
from typing import List, Dict, Optional, Union

CURRENCY_CODES = ["INR", "USD", "EUR", "UNKNOWN", "MIXED"]

AMOUNT_TYPES = [
    "total_bill", "paid", "due", "insurance_balance", "previous_balance",
    "discount", "tax", "consultation_fee", "medicine_cost", "test_charges",
    "other_amount", "unknown",
]

# Types that may legitimately appear more than once in one bill
MULTI_ALLOWED_TYPES = {"medicine_cost", "test_charges", "other_amount"}

STATUSES = ["ok", "no_amounts_found", "error"]


# Extraction
class OCROutput(BaseModel):
    """Raw tokens and currency hint found in the text"""
    raw_tokens: List[str] = Field(..., description="Raw numeric-looking tokens")
    currency_hint: str = Field(..., description="INR, USD, EUR, MIXED or UNKNOWN")
    confidence: float = Field(..., ge=0.0, le=1.0, description="How amount-like the text looked")

    class Config:
        json_schema_extra = {
            "example": {
                "raw_tokens": ["1200", "1000", "200", "10%"],
                "currency_hint": "INR",
                "confidence": 1.0
            }
        }


# Normalization
class NormalizedAmount(BaseModel):
    """A single token converted to a monetary value"""
    value: float = Field(..., gt=0, description="Normalized amount")
    confidence: float = Field(..., ge=0.1, le=1.0, description="How much correction the token needed")


class PercentageInfo(BaseModel):
    """A percentage token, never treated as a currency amount"""
    value: float
    confidence: float = Field(..., ge=0.0, le=1.0)


class NormalizationOutput(BaseModel):
    """Numbers recovered from raw tokens"""
    normalized_amounts: List[float] = Field(..., description="Positive values, two decimals at most")
    percentages: List[PercentageInfo] = Field(default_factory=list, description="Percentage values")
    normalization_confidence: float = Field(..., ge=0.0, le=1.0, description="Mean per-token confidence")

    class Config:
        json_schema_extra = {
            "example": {
                "normalized_amounts": [1200, 1000, 200],
                "percentages": [{"value": 10, "confidence": 0.9}],
                "normalization_confidence": 1.0
            }
        }


# Classification
class ClassifiedAmount(BaseModel):
    """An amount with the role the classifier gave it"""
    type: str = Field(..., description="Semantic role of the amount")
    value: float = Field(..., description="Amount as normalized")
    confidence: float = Field(..., ge=0.1, le=0.95, description="Classification confidence")
    inferred: Optional[bool] = Field(None, description="Derived from other amounts, not read from text")
    context: Optional[str] = Field(None, description="Signal that decided the type")


class ClassificationOutput(BaseModel):
    """Labelled amounts, most confident first"""
    amounts: List[ClassifiedAmount] = Field(..., description="Labelled amounts")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Mean confidence of the labels")

    class Config:
        json_schema_extra = {
            "example": {
                "amounts": [
                    {"type": "total_bill", "value": 1200, "confidence": 0.9},
                    {"type": "paid", "value": 1000, "confidence": 0.86},
                    {"type": "due", "value": 200, "confidence": 0.84}
                ],
                "confidence": 0.87
            }
        }


# Final result
class AmountInfo(BaseModel):
    """One labelled amount with the text it was read from"""
    type: str = Field(..., description="Role of the amount on the bill")
    value: float = Field(..., description="Amount as normalized")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence of the label")
    source: str = Field(..., description="Line or snippet the amount was read from")
    inferred: Optional[bool] = Field(None, description="Derived from other amounts")

    @validator('type')
    def validate_type(cls, v):
        if v not in AMOUNT_TYPES:
            return 'unknown'
        return v


class FinalOutput(BaseModel):
    """Pipeline result: labelled amounts, their sources and one blended confidence"""
    status: str = Field("ok", description="Processing status")
    currency: str = Field(..., description="Currency code for the whole bill")
    amounts: List[AmountInfo] = Field(..., description="Labelled amounts, each with a source snippet")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Blended pipeline confidence")
    percentages: Optional[List[PercentageInfo]] = Field(None, description="Percentages seen in the text")

    @validator('currency')
    def validate_currency(cls, v):
        if v not in CURRENCY_CODES:
            return 'UNKNOWN'
        return v

    @validator('status')
    def validate_status(cls, v):
        if v not in STATUSES:
            return 'error'
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "status": "ok",
                "currency": "INR",
                "amounts": [
                    {
                        "type": "total_bill",
                        "value": 1200,
                        "confidence": 0.9,
                        "source": "text: 'Total: INR 1200'"
                    },
                    {
                        "type": "paid",
                        "value": 1000,
                        "confidence": 0.86,
                        "source": "text: 'Paid: 1000'"
                    },
                    {
                        "type": "due",
                        "value": 200,
                        "confidence": 0.84,
                        "source": "text: 'Due: 200'"
                    }
                ],
                "confidence": 0.77,
                "percentages": [{"value": 10, "confidence": 0.9}]
            }
        }


# Non-ok results
class NoAmountsResponse(BaseModel):
    """Returned when no usable amount could be extracted"""
    status: str = "no_amounts_found"
    reason: str = Field(..., description="Why nothing was found")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "no_amounts_found",
                "reason": "document too noisy"
            }
        }


class ErrorResponse(BaseModel):
    """Returned when processing failed unexpectedly"""
    status: str = "error"
    message: str = Field(..., description="Human-readable error")
    details: Optional[str] = Field(None, description="Underlying error text")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "error",
                "message": "Failed to process text",
                "details": "unexpected token"
            }
        }


# Request bodies
class TextRequest(BaseModel):
    """Bill text sent as JSON"""
    text: str = Field(..., min_length=1, description="Bill text")

    class Config:
        json_schema_extra = {
            "example": {
                "text": "Total: INR 1200 | Paid: 1000 | Due: 200 | Discount: 10%"
            }
        }


class ClassificationRequest(BaseModel):
    """Body of /debug/step3-classification"""
    text: str = Field(..., min_length=1, description="Bill text the amounts came from")
    amounts: List[float] = Field(..., description="Numbers to label")

    class Config:
        json_schema_extra = {
            "example": {
                "text": "Total: INR 1200 | Paid: 1000 | Due: 200",
                "amounts": [1200, 1000, 200]
            }
        }


class NormalizationRequest(BaseModel):
    """Body of /debug/step2-normalization"""
    tokens: List[str] = Field(..., description="Raw tokens as produced by extraction")

    class Config:
        json_schema_extra = {
            "example": {
                "tokens": ["1200", "l000", "2O0", "10%"]
            }
        }


# What the endpoints can return
ResponseModel = Union[FinalOutput, NoAmountsResponse, ErrorResponse]
ExtractionResult = Union[OCROutput, NoAmountsResponse]


# Health check model
class HealthResponse(BaseModel):
    """Payload of GET /health"""
    status: str = "healthy"
    timestamp: str
    version: str = "1.0.0"
    dependencies: Dict[str, str] = {}


# API Info model
class APIInfo(BaseModel):
    """Payload of GET /"""
    name: str = "Bill Amount Detection API"
    version: str = "1.0.0"
    description: str = "Extracts and labels monetary amounts from bill text or images"
    endpoints: Dict[str, str] = {
        "POST /extract-amounts": "Extract amounts from an uploaded image or a text form field",
        "POST /extract-amounts-json": "Extract amounts from a JSON text body",
        "GET /health": "Service and OCR engine status",
        "GET /": "This document",
        "GET /docs": "OpenAPI explorer"
    }
    supported_formats: List[str] = ["JPEG", "PNG", "GIF", "Text"]
    max_file_size: str = "10MB"
