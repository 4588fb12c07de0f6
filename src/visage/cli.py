import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import typer

from .cascade.model import ModelLoadError, load_cascade_file, pack_cascade
from .cascade.reference import build_block_cascade
from .config import Settings
from .imaging.decode import DecodeError, DimensionMismatch
from .logging import get_logger, set_log_level
from .service import ImageAnalyzer
from .similarity.compare import compare_images
from .similarity.hash import hash_image

app = typer.Typer(help="visage: cascade face-region detection and near-duplicate image comparison", no_args_is_help=True)

logger = get_logger(__name__)


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _fail(kind: str, message: str, code: int = 1) -> None:
    _emit({"error": {"kind": kind, "message": message}})
    raise typer.Exit(code=code)


@app.callback()
def main_options(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level for this run (overrides VISAGE_LOG_LEVEL)"),
) -> None:
    if log_level is not None:
        try:
            set_log_level(log_level)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        _fail("invalid_config", str(exc))


@app.command()
def detect(
    image_path: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Image to scan"),
    cascade: Optional[Path] = typer.Option(None, "--cascade", "-c", help="Cascade model file (defaults to VISAGE_CASCADE_PATH)"),
    min_size: Optional[int] = typer.Option(None, help="Smallest window side in pixels"),
    max_size: Optional[int] = typer.Option(None, help="Largest window side in pixels"),
    shift_factor: Optional[float] = typer.Option(None, help="Window stride as a fraction of its side"),
    scale_factor: Optional[float] = typer.Option(None, help="Growth factor between scales"),
    angle: Optional[float] = typer.Option(None, help="Cascade rotation as a fraction of a full turn"),
    overlap_threshold: Optional[float] = typer.Option(None, help="IoU needed to merge detections"),
) -> None:
    """
    Detect face-like regions in an image.

    Prints the clustered detections as JSON, best score first.
    """
    settings = _load_settings()
    overrides = {
        "cascade_path": cascade,
        "min_size": min_size,
        "max_size": max_size,
        "shift_factor": shift_factor,
        "scale_factor": scale_factor,
        "angle": angle,
        "overlap_threshold": overlap_threshold,
    }
    settings = replace(settings, **{key: value for key, value in overrides.items() if value is not None})

    try:
        analyzer = ImageAnalyzer.from_settings(settings)
    except ModelLoadError as exc:
        logger.error(f"Cannot start without a cascade model: {exc}")
        _fail("model_load_error", str(exc), code=2)
    except ValueError as exc:
        _fail("invalid_params", str(exc), code=1)

    logger.info(f"Scanning {image_path}")
    result = analyzer.detect(image_path.read_bytes())
    if not result.ok:
        _fail(result.error.kind, result.error.message)

    logger.info(f"Found {len(result.value)} detections")
    _emit(result.to_dict())


@app.command("hash")
def hash_command(
    image_path: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Image to fingerprint"),
) -> None:
    """Print the perceptual signature of an image as JSON."""
    settings = _load_settings()
    try:
        signature = hash_image(image_path.read_bytes(), max_pixels=settings.max_image_pixels)
    except DecodeError as exc:
        logger.error(f"Failed to decode {image_path}: {exc}")
        _fail("decode_error", str(exc))
    except DimensionMismatch as exc:
        _fail("dimension_mismatch", str(exc))

    _emit(signature.to_dict())


@app.command()
def compare(
    image_a: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="First image"),
    image_b: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Second image"),
    threshold: Optional[float] = typer.Option(None, help="Largest distance still considered similar"),
) -> None:
    """Decide whether two images are near-duplicates."""
    settings = _load_settings()
    try:
        result = compare_images(
            image_a.read_bytes(),
            image_b.read_bytes(),
            threshold=settings.similarity_threshold if threshold is None else threshold,
            max_aspect_difference=settings.max_aspect_difference,
            max_pixels=settings.max_image_pixels,
        )
    except DecodeError as exc:
        logger.error(f"Failed to decode input: {exc}")
        _fail("decode_error", str(exc))
    except DimensionMismatch as exc:
        _fail("dimension_mismatch", str(exc))

    _emit(result.to_dict())


@app.command("export-cascade")
def export_cascade(
    out: Path = typer.Argument(..., help="Where to write the reference block cascade"),
) -> None:
    """Write the built-in reference cascade in the binary model format."""
    model = build_block_cascade()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(pack_cascade(model))
    logger.info(f"Wrote {model.tree_count} trees in {len(model.stages)} stages to {out}")
    _emit(model.describe())


@app.command("inspect-cascade")
def inspect_cascade(
    path: Path = typer.Argument(..., help="Cascade model file"),
) -> None:
    """Validate a cascade file and print its header."""
    try:
        model = load_cascade_file(path)
    except ModelLoadError as exc:
        _fail("model_load_error", str(exc), code=2)

    _emit(model.describe())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
