"""Resize, re-encode and watermark fetched images."""

import asyncio
from typing import Optional

from PIL import Image, UnidentifiedImageError

from ..core.exceptions import DecodeError
from ..core.image_utils import (
    composite_logo,
    compute_watermark_placement,
    decode_image,
    encode_jpeg,
    resize_image,
    scale_placement,
    to_rgb,
)
from ..core.logging_config import get_logger
from ..core.models import FetchedAsset, TransformedImage, TransformSpec, WatermarkPlacement

_DECODE_ERRORS = (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError)


class ImageTransformer:
    """
    Pure image transformation with no I/O.

    ``transform`` does the Pillow work synchronously; ``transform_async``
    runs it on a worker thread so the event loop keeps serving other items.
    """

    def __init__(self) -> None:
        self._logger = get_logger("transformer")

    async def transform_async(
        self,
        asset: FetchedAsset,
        spec: TransformSpec,
        logo: Optional[bytes] = None,
    ) -> TransformedImage:
        return await asyncio.to_thread(self.transform, asset, spec, logo)

    def transform(
        self,
        asset: FetchedAsset,
        spec: TransformSpec,
        logo: Optional[bytes] = None,
    ) -> TransformedImage:
        try:
            image = decode_image(asset.data)
        except _DECODE_ERRORS as e:
            raise DecodeError(f"Cannot decode image {asset.source_id}: {e}") from e

        original_width, original_height = image.size
        self._logger.debug(f"[{asset.source_id}] Loaded image: {original_width}x{original_height}")

        output = resize_image(to_rgb(image), spec.max_edge)

        placement: Optional[WatermarkPlacement] = None
        if spec.watermark is not None and logo:
            logo_image = self._decode_logo(logo, asset.source_id)
            if logo_image is not None:
                original_placement = compute_watermark_placement(
                    original_width,
                    original_height,
                    logo_image.width,
                    logo_image.height,
                    spec.watermark,
                )
                placement = scale_placement(
                    original_placement,
                    (original_width, original_height),
                    output.size,
                )
                output = composite_logo(output, logo_image, placement)
                self._logger.debug(
                    f"[{asset.source_id}] Watermark at ({placement.x}, {placement.y}) "
                    f"size {placement.logo_width}x{placement.logo_height}"
                )

        data = encode_jpeg(output, spec.quality)
        return TransformedImage(
            data=data,
            width=output.width,
            height=output.height,
            original_width=original_width,
            original_height=original_height,
            original_size=asset.size,
            processed_size=len(data),
            placement=placement,
        )

    def _decode_logo(self, logo: bytes, source_id: str) -> Optional[Image.Image]:
        try:
            return decode_image(logo)
        except _DECODE_ERRORS as e:
            self._logger.warning(f"[{source_id}] Logo is not a readable image, skipping watermark: {e}")
            return None
