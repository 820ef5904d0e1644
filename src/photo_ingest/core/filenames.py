"""Storage-key-safe filename handling."""

import posixpath
import re

_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_.\-:]")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")
_EDGE_UNDERSCORES = re.compile(r"^_+|_+$")
_COPY_SUFFIX = re.compile(r"\(\d+\)$")

OUTPUT_EXTENSION = ".jpg"
_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".heic", ".heif")


def sanitize_filename(filename: str) -> str:
    """
    Make ``filename`` safe for use in a storage key and as a face-index id.

    Characters outside ``[a-zA-Z0-9_.\\-:]`` become ``_``, runs of ``_`` are
    collapsed and leading/trailing ``_`` are trimmed. A trailing ``(N)``
    disambiguation suffix is kept verbatim. The transform is idempotent.

    Args:
        filename: User-supplied file name

    Returns:
        Sanitized file name
    """
    suffix_match = _COPY_SUFFIX.search(filename)
    suffix = suffix_match.group(0) if suffix_match else ""
    stem = filename[: len(filename) - len(suffix)] if suffix else filename

    sanitized = _INVALID_CHARS.sub("_", stem)
    sanitized = _UNDERSCORE_RUNS.sub("_", sanitized)
    sanitized = _EDGE_UNDERSCORES.sub("", sanitized)
    return sanitized + suffix


def output_filename(filename: str, extension: str = OUTPUT_EXTENSION) -> str:
    """
    Sanitized name with its image extension normalized to the output encoding.

    ``IMG 01.PNG`` becomes ``IMG_01.jpg``; a name without a known image
    extension gets ``extension`` appended.
    """
    base = posixpath.basename(filename.replace("\\", "/"))
    stem, ext = posixpath.splitext(base)
    if ext.lower() in _IMAGE_EXTENSIONS:
        base = stem
    sanitized = sanitize_filename(base) or "image"
    return sanitized + extension


def external_image_id(filename: str) -> str:
    """
    Face-index id for a stored file name.

    The recognition service accepts only ``[a-zA-Z0-9_.\\-:]``, so the
    ``(N)`` suffix kept by ``sanitize_filename`` is flattened here.
    """
    flattened = _INVALID_CHARS.sub("_", filename)
    flattened = _UNDERSCORE_RUNS.sub("_", flattened)
    return _EDGE_UNDERSCORES.sub("", flattened) or "image"
