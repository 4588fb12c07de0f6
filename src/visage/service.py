"""
Request-level entry points: Detect, Hash and Compare.

An ImageAnalyzer owns the one shared CascadeModel, loaded when the analyzer
is built. Each call decodes its own image bytes and works on request-local
data only, so calls may run concurrently from any number of threads. A
failure inside one call comes back as a failed OperationResult and never
escapes to the caller's process.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, TypeVar

from .cascade.cluster import cluster_detections
from .cascade.engine import Detection, InvalidParamsError, ScanCancelled, run_cascade
from .cascade.model import CascadeModel, load_cascade_file
from .config import Settings
from .imaging.decode import DecodeError, DimensionMismatch, decode_image
from .logging import get_logger
from .similarity.compare import SimilarityResult, compare_signatures
from .similarity.hash import ImageSignature, compute_signature

logger = get_logger(__name__)

T = TypeVar("T")

# Exception type -> error kind reported to callers
_ERROR_KINDS = (
    (DecodeError, "decode_error"),
    (DimensionMismatch, "dimension_mismatch"),
    (InvalidParamsError, "invalid_params"),
    (ScanCancelled, "cancelled"),
)


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one request: either a value or an error, never both."""
    value: Optional[T] = None
    error: Optional[ErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise RuntimeError(f"{self.error.kind}: {self.error.message}")
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> Any:
        if self.error is not None:
            return {"error": self.error.to_dict()}
        return _to_json(self.value)


def _to_json(value: Any) -> Any:
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class ImageAnalyzer:
    """
    Face-region detection and near-duplicate comparison over encoded images.

    The cascade model is read-only after construction and shared by every
    call without locking.
    """

    def __init__(self, model: CascadeModel, settings: Optional[Settings] = None):
        self.model = model
        self.settings = settings or Settings()
        self.params = self.settings.cascade_params()
        # Fail at startup rather than on the first request
        self.params.validate()
        if self.settings.cluster_representative not in ("seed", "mean"):
            raise ValueError(f"Unknown cluster representative: {self.settings.cluster_representative}")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> ImageAnalyzer:
        """
        Load the configured cascade and build an analyzer.

        Raises:
            ModelLoadError: If the cascade is missing or corrupt; the caller
                must not start serving in that case
        """
        settings = settings or Settings()
        model = load_cascade_file(settings.cascade_path)
        return cls(model, settings)

    def detect(self, image_bytes: bytes, cancel: Optional[threading.Event] = None) -> OperationResult[List[Detection]]:
        """Detections after clustering, best score first."""
        def run() -> List[Detection]:
            matrix = decode_image(image_bytes, max_pixels=self.settings.max_image_pixels)
            raw = run_cascade(self.model, matrix.gray, self.params, cancel=cancel)
            return cluster_detections(
                raw,
                overlap_threshold=self.settings.overlap_threshold,
                representative=self.settings.cluster_representative,  # type: ignore[arg-type]
            )

        return self._guard("detect", run)

    def hash(self, image_bytes: bytes) -> OperationResult[ImageSignature]:
        def run() -> ImageSignature:
            matrix = decode_image(image_bytes, max_pixels=self.settings.max_image_pixels)
            return compute_signature(matrix)

        return self._guard("hash", run)

    def compare(self, image_bytes_a: bytes, image_bytes_b: bytes) -> OperationResult[SimilarityResult]:
        def run() -> SimilarityResult:
            sig_a = compute_signature(decode_image(image_bytes_a, max_pixels=self.settings.max_image_pixels))
            sig_b = compute_signature(decode_image(image_bytes_b, max_pixels=self.settings.max_image_pixels))
            return compare_signatures(
                sig_a,
                sig_b,
                threshold=self.settings.similarity_threshold,
                max_aspect_difference=self.settings.max_aspect_difference,
            )

        return self._guard("compare", run)

    def _guard(self, operation: str, run: Callable[[], T]) -> OperationResult[T]:
        try:
            return OperationResult(value=run())
        except Exception as exc:
            for error_type, kind in _ERROR_KINDS:
                if isinstance(exc, error_type):
                    logger.warning(f"{operation} failed ({kind}): {exc}")
                    return OperationResult(error=ErrorInfo(kind=kind, message=str(exc)))
            # Unexpected failures stay inside this request
            logger.exception(f"{operation} failed unexpectedly")
            return OperationResult(error=ErrorInfo(kind="internal_error", message=str(exc)))
