# amount_detection/exceptions.py
"""
Exceptions raised at the pipeline boundary and by the OCR collaborator
"""


class AmountDetectionError(ValueError):
    """Base exception for amount detection failures"""
    pass


class OCRError(AmountDetectionError):
    """Text recognition failed"""
    pass


class OCRUnavailableError(OCRError):
    """Tesseract is missing or the engine was not started"""
    pass


class OCRTimeoutError(OCRError):
    """Recognition did not finish within the allowed time"""
    pass


class ImageDecodeError(OCRError):
    """Uploaded bytes could not be decoded as an image"""
    pass


class InputTooLongError(AmountDetectionError):
    """Bill text exceeds the configured maximum length"""
    pass
