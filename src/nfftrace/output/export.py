"""Image export utilities for rendered images.

This module converts rendered linear images to 8-bit RGB and writes them
with Pillow.

Supported formats:
    - PPM (binary ``P6``, the default output of the command line)
    - PNG (chosen when the output path ends in ``.png``)

Writes are atomic: the image goes to a temporary file in the target
directory, which is renamed over the destination only once it is complete.
A failed write never leaves a truncated image behind.

Example:
    >>> from src.nfftrace.output.export import save_image
    >>> image = renderer.render()
    >>> save_image(image, "trace.ppm")
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from src.nfftrace.errors import OutputError

logger = logging.getLogger(__name__)

# Pillow format name for each supported suffix
_FORMATS = {".ppm": "PPM", ".png": "PNG"}


def image_to_uint8(image: npt.ArrayLike) -> npt.NDArray[np.uint8]:
    """Convert a linear float image in [0, 1] to 8-bit RGB.

    Channels are clamped and scaled by 255.9 before truncation, so 1.0 maps
    to 255 and each of the 256 levels covers an equal share of [0, 1].

    Args:
        image: Array-like of shape (H, W, 3), e.g. an ImageBuffer.

    Returns:
        8-bit image array of shape (H, W, 3) with dtype uint8.
    """
    array = np.asarray(image, dtype=np.float32)
    if array.ndim != 3 or array.shape[2] != 3:
        raise ValueError(f"Expected an image of shape (H, W, 3), got {array.shape}")
    clean = np.nan_to_num(array, nan=0.0, posinf=1.0, neginf=0.0)
    clamped = np.clip(clean, 0.0, 1.0)
    return np.floor(clamped * 255.9).astype(np.uint8)


def _current_umask() -> int:
    # The umask can only be read by setting it
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _write_atomic(image: npt.ArrayLike, filepath: str | os.PathLike, image_format: str) -> Path:
    target = Path(filepath)
    pil_image = PILImage.fromarray(image_to_uint8(image))
    directory = target.parent
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    except OSError as exc:
        raise OutputError(f"Cannot create output file in {directory}: {exc}") from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            pil_image.save(handle, format=image_format)
        # mkstemp creates the file private to its owner
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, target)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise OutputError(f"Cannot write {target}: {exc}") from exc

    logger.info(
        "Wrote %dx%d %s image to %s", pil_image.width, pil_image.height, image_format, target
    )
    return target


def save_ppm(image: npt.ArrayLike, filepath: str | os.PathLike) -> Path:
    """Save an image as a binary (P6) PPM file.

    Args:
        image: Linear image of shape (H, W, 3) with values in [0, 1].
        filepath: Output file path.

    Returns:
        The path written.

    Raises:
        OutputError: If the file cannot be written.
    """
    return _write_atomic(image, filepath, "PPM")


def save_png(image: npt.ArrayLike, filepath: str | os.PathLike) -> Path:
    """Save an image as an 8-bit PNG file.

    Args:
        image: Linear image of shape (H, W, 3) with values in [0, 1].
        filepath: Output file path.

    Returns:
        The path written.

    Raises:
        OutputError: If the file cannot be written.
    """
    return _write_atomic(image, filepath, "PNG")


def save_image(image: npt.ArrayLike, filepath: str | os.PathLike) -> Path:
    """Save an image, choosing PNG for ``.png`` paths and PPM otherwise."""
    image_format = _FORMATS.get(Path(filepath).suffix.lower(), "PPM")
    return _write_atomic(image, filepath, image_format)


def compute_rmse(image_a: npt.ArrayLike, image_b: npt.ArrayLike) -> float:
    """Compute root mean squared error between two images.

    Args:
        image_a: First image array.
        image_b: Second image array (must have same shape as image_a).

    Returns:
        RMSE value (lower is more similar).

    Raises:
        ValueError: If image shapes don't match.
    """
    a = np.asarray(image_a, dtype=np.float64)
    b = np.asarray(image_b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Image shapes must match: {a.shape} vs {b.shape}")

    diff = a - b
    return float(np.sqrt(np.mean(diff**2)))
