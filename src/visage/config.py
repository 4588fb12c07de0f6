import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

from .cascade.engine import CascadeParams

ENV_PREFIX = "VISAGE_"


@dataclass
class Settings:
    cascade_path: Path = Path("cascade/facefinder.vcsc")

    # Cascade scan
    min_size: int = 20
    max_size: int = 1000
    shift_factor: float = 0.1
    scale_factor: float = 1.1
    angle: float = 0.0
    overlap_threshold: float = 0.2
    cluster_representative: str = "seed"

    # Signature comparison
    similarity_threshold: float = 0.005
    max_aspect_difference: float = 0.1

    # Decoder guard against decompression bombs
    max_image_pixels: int = 64_000_000

    def cascade_params(self) -> CascadeParams:
        return CascadeParams(
            min_size=self.min_size,
            max_size=self.max_size,
            shift_factor=self.shift_factor,
            scale_factor=self.scale_factor,
            angle=self.angle,
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from ``VISAGE_*`` environment variables.

        Every field can be overridden by its upper-cased name, e.g.
        ``VISAGE_CASCADE_PATH`` or ``VISAGE_OVERLAP_THRESHOLD``. Unset
        variables keep the defaults.

        Raises:
            ValueError: If a variable cannot be parsed into the field's type
        """
        if environ is None:
            environ = os.environ

        overrides = {}
        for field in fields(cls):
            raw = environ.get(ENV_PREFIX + field.name.upper())
            if raw is None or raw.strip() == "":
                continue
            default = field.default
            try:
                if isinstance(default, Path):
                    overrides[field.name] = Path(raw)
                elif isinstance(default, str):
                    overrides[field.name] = raw.strip()
                elif isinstance(default, int):
                    overrides[field.name] = int(raw)
                else:
                    overrides[field.name] = float(raw)
            except ValueError as exc:
                raise ValueError(
                    f"Invalid value for {ENV_PREFIX}{field.name.upper()}: {raw!r}"
                ) from exc

        return cls(**overrides)
