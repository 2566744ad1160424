"""
Larm -- Safety & Input Guards
Caller-side checks run before anything reaches the pipeline: parameter
ranges, file type and file size. The pipeline itself trusts its inputs.
"""

import os
from pathlib import Path

from core.config import MAX_UPLOAD_MB
from core.params import EffectParameters, PARAM_RANGES

ALLOWED_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp", ".gif",
}


class SafetyError(Exception):
    """Raised when a caller-side check fails."""
    pass


def range_violations(params: EffectParameters) -> list[str]:
    """Describe every field outside its valid range (empty list if none)."""
    problems = []
    for name, (lo, hi) in PARAM_RANGES.items():
        value = getattr(params, name)
        if not lo <= value <= hi:
            problems.append(f"{name}={value} outside [{lo}, {hi}]")
    return problems


def validate_params(params: EffectParameters) -> EffectParameters:
    """Reject (never clamp) out-of-range parameters.

    Raises:
        SafetyError: Listing every offending field.
    """
    problems = range_violations(params)
    if problems:
        raise SafetyError("Parameter out of range: " + "; ".join(problems))
    return params


def check_upload_size(size_bytes: int, max_mb: int = MAX_UPLOAD_MB) -> None:
    """Raise SafetyError if an upload exceeds the configured cap."""
    if size_bytes > max_mb * 1024 * 1024:
        raise SafetyError(
            f"File is {size_bytes / (1024 * 1024):.0f}MB, exceeds {max_mb}MB limit."
        )


def preflight(input_path: str, max_mb: int = MAX_UPLOAD_MB) -> dict:
    """Validate an input image path before loading it.

    Returns:
        dict with path, size_mb and extension.

    Raises:
        FileNotFoundError: If the file does not exist.
        SafetyError: If the extension is unsupported or the file is too large.
    """
    real_path = os.path.realpath(str(input_path))
    if not os.path.isfile(real_path):
        raise FileNotFoundError(f"Input file not found: {input_path}")

    ext = Path(real_path).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    size_bytes = os.path.getsize(real_path)
    check_upload_size(size_bytes, max_mb)

    return {
        "path": real_path,
        "size_mb": size_bytes / (1024 * 1024),
        "extension": ext,
    }
