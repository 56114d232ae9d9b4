from functools import lru_cache
from typing import List
import io
from fastapi import APIRouter, Body, UploadFile, File, HTTPException, Depends
from fastapi.responses import Response, StreamingResponse
from starlette.concurrency import run_in_threadpool
from app.adapters.camera.opencv_camera_adapter import OpenCvCameraAdapter
from app.adapters.recognition.gemini_adapter import GeminiAdapter
from app.domain import image_utils, services
from app.domain.detection_client import DetectionClient
from app.domain.models import DetectionSet, EncodedImage, HistoryEntry, PipelineView
from app.api.schemas import DataUrlScanRequest
from app.domain.pipeline import PipelineController
from app.core.config import settings

router = APIRouter()

# Handlers are all `async def` so every controller mutation runs on the event
# loop; the controller relies on that for its one-thread-of-control model.


# Dependency Injection (Cached)
@lru_cache()
def get_controller() -> PipelineController:
    client = DetectionClient(GeminiAdapter(), timeout_s=settings.recognition_timeout_s)
    return PipelineController(
        client,
        OpenCvCameraAdapter(),
        camera_facing=settings.camera_facing,
        jpeg_quality=settings.jpeg_quality,
    )


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/state", response_model=PipelineView)
async def state(controller: PipelineController = Depends(get_controller)):
    return controller.view()


@router.post("/scan/upload", response_model=PipelineView)
async def upload(
    file: UploadFile = File(...),
    controller: PipelineController = Depends(get_controller),
):
    limit = settings.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise HTTPException(status_code=413, detail="File too large")

    # Never buffer more than one byte past the limit.
    data = await file.read(limit + 1)
    if len(data) > limit:
        raise HTTPException(status_code=413, detail="File too large")

    return await controller.upload(data, mime_type=file.content_type, filename=file.filename)


@router.post("/scan/data-url", response_model=PipelineView)
async def upload_data_url(
    payload: DataUrlScanRequest = Body(...),
    controller: PipelineController = Depends(get_controller),
):
    try:
        image = EncodedImage.from_data_url(payload.image_base64)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if image.size > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    return await controller.upload(image.data, mime_type=image.mime_type)


@router.get("/scan/image")
async def current_image(controller: PipelineController = Depends(get_controller)):
    image = controller.image
    if image is None:
        raise HTTPException(status_code=404, detail="No current image")

    return Response(content=image.data, media_type=image.mime_type)


@router.post("/scan/retry", response_model=PipelineView)
async def retry(controller: PipelineController = Depends(get_controller)):
    return await controller.process()


@router.post("/scan/clear", response_model=PipelineView)
async def clear(controller: PipelineController = Depends(get_controller)):
    return controller.clear()


def _render_annotated(image: EncodedImage, detections: DetectionSet, quality: int) -> bytes:
    img = image_utils.decode_bgr(image.data)
    if img is None:
        raise ValueError("Could not decode image")

    img_h, img_w = img.shape[:2]
    boxes = [
        (
            services.to_pixel_rect(plate.plate_bounding_box, img_w, img_h),
            plate.plate_number,
            services.is_high(plate),
        )
        for plate in detections.plates
    ]
    return image_utils.encode_jpeg(image_utils.draw_overlays(img, boxes), quality=quality)


@router.get("/scan/annotated")
async def annotated(controller: PipelineController = Depends(get_controller)):
    image = controller.image
    if image is None:
        raise HTTPException(status_code=404, detail="No current image")

    detections = controller.current_detections() or DetectionSet()
    try:
        jpeg = await run_in_threadpool(_render_annotated, image, detections, settings.jpeg_quality)
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return StreamingResponse(
        io.BytesIO(jpeg),
        media_type="image/jpeg",
        headers={"Content-Disposition": "inline; filename=annotated.jpg"}
    )


@router.post("/camera/start", response_model=PipelineView)
async def camera_start(controller: PipelineController = Depends(get_controller)):
    return await controller.start_camera()


@router.post("/camera/snapshot", response_model=PipelineView)
async def camera_snapshot(controller: PipelineController = Depends(get_controller)):
    return await controller.snapshot()


@router.post("/camera/stop", response_model=PipelineView)
async def camera_stop(controller: PipelineController = Depends(get_controller)):
    return controller.stop_camera()


@router.get("/history", response_model=List[HistoryEntry])
async def history(controller: PipelineController = Depends(get_controller)):
    return controller.history.entries()


@router.delete("/history", response_model=PipelineView)
async def clear_history(controller: PipelineController = Depends(get_controller)):
    return controller.clear_history()


@router.get("/history/{entry_id}/image")
async def history_image(entry_id: str, controller: PipelineController = Depends(get_controller)):
    entry = controller.history.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"History entry not found: {entry_id}")

    return Response(content=entry.image.data, media_type=entry.image.mime_type)


@router.delete("/error", response_model=PipelineView)
async def dismiss_error(controller: PipelineController = Depends(get_controller)):
    return controller.dismiss_error()
