"""visage: cascade face-region detection and perceptual image comparison."""

from .cascade import CascadeModel, CascadeParams, Detection, ModelLoadError
from .config import Settings
from .imaging import DecodeError, DimensionMismatch, PixelMatrix, decode_image
from .service import ErrorInfo, ImageAnalyzer, OperationResult
from .similarity import ImageSignature, SimilarityResult

__version__ = "0.1.0"

__all__ = [
    "CascadeModel",
    "CascadeParams",
    "Detection",
    "ModelLoadError",
    "Settings",
    "DecodeError",
    "DimensionMismatch",
    "PixelMatrix",
    "decode_image",
    "ErrorInfo",
    "ImageAnalyzer",
    "OperationResult",
    "ImageSignature",
    "SimilarityResult",
]
