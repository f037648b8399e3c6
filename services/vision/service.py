"""Image classification, object detection and segmentation."""

from __future__ import annotations

import io
from typing import Any

from PIL import Image, UnidentifiedImageError

from services.common.audio import UnsupportedFormatError
from services.common.logging import get_logger
from services.common.pipelines import PipelineGateway

logger = get_logger(__name__, service_name="api")


class UnsupportedImageError(UnsupportedFormatError):
    """Uploaded bytes are not an image Pillow can decode."""


def decode_image(data: bytes) -> Image.Image:
    """Decode an uploaded image and convert it to RGB."""
    if not data:
        raise UnsupportedImageError("image buffer is empty")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, EOFError, ValueError) as exc:
        raise UnsupportedImageError(f"cannot decode image: {exc}") from exc
    return image.convert("RGB")


def _label_score(entry: dict[str, Any]) -> dict[str, Any]:
    score = entry.get("score")
    return {
        "label": entry.get("label"),
        "score": float(score) if score is not None else None,
    }


def bounding_box(box: dict[str, Any]) -> dict[str, float]:
    """Convert a corner box ``{xmin, ymin, xmax, ymax}`` to ``{x, y, width, height}``."""
    xmin, ymin = float(box["xmin"]), float(box["ymin"])
    return {
        "x": xmin,
        "y": ymin,
        "width": float(box["xmax"]) - xmin,
        "height": float(box["ymax"]) - ymin,
    }


async def classify_image(gateway: PipelineGateway, image: Image.Image) -> list[dict[str, Any]]:
    results = await gateway.run("image_classification", image)
    return [_label_score(entry) for entry in results]


async def detect_objects(gateway: PipelineGateway, image: Image.Image) -> list[dict[str, Any]]:
    results = await gateway.run("object_detection", image)
    objects = [
        {**_label_score(entry), "boundingBox": bounding_box(entry["box"])}
        for entry in results
    ]
    logger.debug("vision.objects_detected", count=len(objects))
    return objects


async def segment_image(gateway: PipelineGateway, image: Image.Image) -> list[dict[str, Any]]:
    """Segment labels and scores; masks are not returned."""
    results = await gateway.run("image_segmentation", image)
    return [_label_score(entry) for entry in results]


__all__ = [
    "UnsupportedImageError",
    "bounding_box",
    "classify_image",
    "decode_image",
    "detect_objects",
    "segment_image",
]
