"""Vision routes: /vision/classify, /vision/detect and /vision/segment."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Request, UploadFile
from PIL import Image
from pydantic import BaseModel

from services.common.http import http_error, max_upload_bytes, read_upload
from services.common.logging import get_logger
from services.common.pipelines import PipelineGateway, get_gateway
from services.vision.service import (
    classify_image,
    decode_image,
    detect_objects,
    segment_image,
)

logger = get_logger(__name__, service_name="api")

router = APIRouter(prefix="/vision", tags=["Vision"])


class LabelScore(BaseModel):
    label: str | None
    score: float | None


class BoundingBox(BaseModel):
    x: float
    y: float
    width: float
    height: float


class DetectedObject(LabelScore):
    boundingBox: BoundingBox  # noqa: N815


class ClassificationResponse(BaseModel):
    classification: list[LabelScore]


class DetectionResponse(BaseModel):
    objects: list[DetectedObject]


class SegmentationResponse(BaseModel):
    segmentation: list[LabelScore]


Operation = Callable[[PipelineGateway, Image.Image], Awaitable[list[dict[str, Any]]]]


async def _run_on_upload(
    request: Request,
    image: UploadFile,
    gateway: PipelineGateway,
    operation: Operation,
    *,
    failure_message: str,
    event: str,
) -> list[dict[str, Any]]:
    data = await read_upload(image, field="image", max_bytes=max_upload_bytes(request))
    try:
        picture = await asyncio.to_thread(decode_image, data)
        return await operation(gateway, picture)
    except Exception as exc:
        raise http_error(
            exc,
            failure_message,
            logger=logger,
            event=event,
            filename=image.filename,
        ) from exc


@router.post("/classify", response_model=ClassificationResponse)
async def classify(
    request: Request,
    image: UploadFile,
    gateway: PipelineGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Classify an uploaded image (multipart field ``image``)."""
    results = await _run_on_upload(
        request,
        image,
        gateway,
        classify_image,
        failure_message="Failed to classify image",
        event="vision.classify_failed",
    )
    return {"classification": results}


@router.post("/detect", response_model=DetectionResponse)
async def detect(
    request: Request,
    image: UploadFile,
    gateway: PipelineGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Detect objects and their bounding boxes in an uploaded image."""
    results = await _run_on_upload(
        request,
        image,
        gateway,
        detect_objects,
        failure_message="Failed to detect objects",
        event="vision.detect_failed",
    )
    return {"objects": results}


@router.post("/segment", response_model=SegmentationResponse)
async def segment(
    request: Request,
    image: UploadFile,
    gateway: PipelineGateway = Depends(get_gateway),
) -> dict[str, Any]:
    """Segment an uploaded image into labelled regions."""
    results = await _run_on_upload(
        request,
        image,
        gateway,
        segment_image,
        failure_message="Failed to segment image",
        event="vision.segment_failed",
    )
    return {"segmentation": results}


__all__ = ["router"]
