"""Image geometry and Pillow helpers for the ingestion pipeline."""

import io
from typing import Sequence, Tuple

from PIL import Image, ImageOps

from .models import WatermarkPlacement, WatermarkSpec, WatermarkTier


def _tier_for(min_dim: int, tiers: Sequence[WatermarkTier]) -> WatermarkTier:
    for tier in tiers:
        if min_dim < tier.upper_bound:
            return tier
    return tiers[-1]


def compute_logo_size(width: int, height: int, spec: WatermarkSpec) -> int:
    """
    Edge length of the logo box for an image of ``width`` x ``height``.

    The tier is picked by the shorter dimension; the result is the larger of
    the tier fraction and the tier floor, then capped at
    ``max_fraction_of_max_dim`` of the longer dimension.

    Args:
        width: Original image width in pixels
        height: Original image height in pixels
        spec: Watermark sizing tables

    Returns:
        Logo edge length in pixels (at least 1)
    """
    min_dim = min(width, height)
    max_dim = max(width, height)
    tier = _tier_for(min_dim, spec.size_tiers)
    logo_size = max(tier.floor, int(min_dim * tier.fraction))
    logo_size = min(logo_size, int(max_dim * spec.max_fraction_of_max_dim))
    return max(1, logo_size)


def compute_padding(width: int, height: int, spec: WatermarkSpec) -> int:
    """Distance between the logo and the anchored image corner."""
    min_dim = min(width, height)
    tier = _tier_for(min_dim, spec.padding_tiers)
    return max(tier.floor, int(min_dim * tier.fraction))


def fit_logo(logo_width: int, logo_height: int, logo_size: int) -> Tuple[int, int]:
    """Scale a logo so its longer side equals ``logo_size``, keeping aspect ratio."""
    aspect = logo_width / logo_height
    if aspect > 1:
        width, height = logo_size, logo_size / aspect
    else:
        width, height = logo_size * aspect, logo_size
    return max(1, int(width)), max(1, int(height))


def compute_watermark_placement(
    width: int,
    height: int,
    logo_width: int,
    logo_height: int,
    spec: WatermarkSpec,
) -> WatermarkPlacement:
    """
    Bottom-left logo placement in the original image's coordinate space.

    The rectangle is clamped into the image, which only matters for images
    smaller than the tier floors.
    """
    logo_size = compute_logo_size(width, height, spec)
    padding = compute_padding(width, height, spec)
    fitted_w, fitted_h = fit_logo(logo_width, logo_height, logo_size)
    fitted_w = min(fitted_w, width)
    fitted_h = min(fitted_h, height)

    x = min(padding, width - fitted_w)
    y = height - fitted_h - padding
    y = max(0, min(y, height - fitted_h))

    return WatermarkPlacement(
        x=x,
        y=y,
        logo_width=fitted_w,
        logo_height=fitted_h,
        padding=padding,
        logo_size=logo_size,
    )


def scale_placement(
    placement: WatermarkPlacement,
    original_size: Tuple[int, int],
    final_size: Tuple[int, int],
) -> WatermarkPlacement:
    """Map a placement onto the resized output and keep it inside its bounds."""
    sx = final_size[0] / original_size[0]
    sy = final_size[1] / original_size[1]
    scaled = placement.scaled(sx, sy)
    logo_w = min(scaled.logo_width, final_size[0])
    logo_h = min(scaled.logo_height, final_size[1])
    return WatermarkPlacement(
        x=max(0, min(scaled.x, final_size[0] - logo_w)),
        y=max(0, min(scaled.y, final_size[1] - logo_h)),
        logo_width=logo_w,
        logo_height=logo_h,
        padding=scaled.padding,
        logo_size=scaled.logo_size,
    )


def fit_within(width: int, height: int, max_edge: int) -> Tuple[int, int]:
    """Target size with the longer edge at most ``max_edge``; never upscales."""
    longer = max(width, height)
    if longer <= max_edge:
        return width, height
    ratio = max_edge / longer
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def decode_image(data: bytes) -> Image.Image:
    """Open, fully load and orient an image from bytes."""
    image = Image.open(io.BytesIO(data))
    image.load()
    return ImageOps.exif_transpose(image)


def to_rgb(image: Image.Image) -> Image.Image:
    """Flatten transparency onto white and convert to RGB for JPEG output."""
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def resize_image(image: Image.Image, max_edge: int) -> Image.Image:
    target = fit_within(image.width, image.height, max_edge)
    if target == image.size:
        return image
    return image.resize(target, Image.Resampling.LANCZOS)


def composite_logo(
    image: Image.Image, logo: Image.Image, placement: WatermarkPlacement
) -> Image.Image:
    """Alpha-blend ``logo`` over ``image`` at ``placement``."""
    sized_logo = logo.convert("RGBA").resize(
        (placement.logo_width, placement.logo_height), Image.Resampling.LANCZOS
    )
    base = image.convert("RGBA")
    base.alpha_composite(sized_logo, dest=(placement.x, placement.y))
    return base.convert("RGB")


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    output_stream = io.BytesIO()
    image.save(output_stream, format="JPEG", quality=quality, optimize=True)
    return output_stream.getvalue()
