# plates/api.py

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .exceptions import InvalidImageError
from .optimizer import FORMAT_EXTENSIONS, ImageOptimizer
from .schemas import PlateCategory, PlateRecord, ViewTransformState
from .service import PlateService

logger = logging.getLogger(__name__)
router = APIRouter()

MEDIA_TYPES = {
    '.jpg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.bmp': 'image/bmp',
    '.tiff': 'image/tiff',
    '.gif': 'image/gif',
    '.heic': 'image/heic',
}


def get_service(request: Request) -> PlateService:
    return request.app.state.service


class MetadataPatch(BaseModel):
    title: Optional[str] = None
    plate_number: Optional[str] = None
    category: Optional[PlateCategory] = None


class ViewStateUpdate(ViewTransformState):
    viewport_width: Optional[float] = Field(default=None, allow_inf_nan=False)
    viewport_height: Optional[float] = Field(default=None, allow_inf_nan=False)


def _media_type(data: bytes) -> str:
    try:
        image_format = ImageOptimizer.open(data).format or 'JPEG'
    except InvalidImageError:
        return 'application/octet-stream'
    return MEDIA_TYPES.get(FORMAT_EXTENSIONS.get(image_format.upper(), '.jpg'), 'image/jpeg')


@router.get("/plates", response_model=List[PlateRecord], summary="Kayıtlı plakaları listele")
async def list_plates(service: PlateService = Depends(get_service)):
    return service.list_records()


@router.post("/plates", response_model=PlateRecord, status_code=201, summary="Fotoğraflı yeni plaka kaydı")
async def create_plate(
    title: str = Form(...),
    plate_number: str = Form(...),
    category: PlateCategory = Form(PlateCategory.car),
    file: UploadFile = File(...),
    service: PlateService = Depends(get_service),
):
    contents = await file.read()
    record = await service.create_record(
        contents,
        title=title,
        plate_number=plate_number,
        category=category,
        filename=file.filename,
    )
    logger.info(f"Created plate record {record.id} ({record.plate_number})")
    return record


@router.get("/plates/{record_id}", response_model=PlateRecord)
async def get_plate(record_id: str, service: PlateService = Depends(get_service)):
    return service.get_record(record_id)


@router.patch("/plates/{record_id}", response_model=PlateRecord, summary="Başlık/plaka/tür düzenle")
async def update_plate(record_id: str, patch: MetadataPatch, service: PlateService = Depends(get_service)):
    return await service.update_metadata(
        record_id,
        title=patch.title,
        plate_number=patch.plate_number,
        category=patch.category,
    )


@router.delete("/plates/{record_id}", status_code=204)
async def delete_plate(record_id: str, service: PlateService = Depends(get_service)):
    await service.delete_record(record_id)
    return Response(status_code=204)


@router.get("/plates/{record_id}/image", summary="Görseli yerel/önbellek/bulut sırasıyla getir")
async def get_plate_image(record_id: str, service: PlateService = Depends(get_service)):
    data = await service.load_image(record_id)
    if data is None:
        return JSONResponse(
            status_code=404,
            content={"detail": "Image not available", "retryable": True},
        )
    return Response(content=data, media_type=_media_type(data))


@router.post("/plates/{record_id}/views", response_model=PlateRecord, summary="Detay görünümü açıldı")
async def record_plate_view(record_id: str, service: PlateService = Depends(get_service)):
    return await service.record_view(record_id)


@router.get("/plates/{record_id}/view-state", response_model=ViewTransformState)
async def get_view_state(record_id: str, service: PlateService = Depends(get_service)):
    return service.get_view_state(record_id) or ViewTransformState()


@router.put("/plates/{record_id}/view-state", response_model=ViewTransformState)
async def put_view_state(record_id: str, update: ViewStateUpdate, service: PlateService = Depends(get_service)):
    state = ViewTransformState(scale=update.scale, offset=update.offset)
    return await service.set_view_state(
        record_id,
        state,
        viewport_width=update.viewport_width,
        viewport_height=update.viewport_height,
    )


@router.delete("/plates/{record_id}/view-state", response_model=ViewTransformState)
async def reset_view_state(record_id: str, service: PlateService = Depends(get_service)):
    return await service.reset_view_state(record_id)


@router.post("/migration", summary="Yalnızca yerelde olan görselleri buluta taşı")
async def trigger_migration(service: PlateService = Depends(get_service)):
    records = await service.migrate()
    return {
        "synced": sum(1 for r in records if r.cloud_id),
        "total": len(records),
        "cloud_available": service.cloud_available,
    }


@router.get("/storage/usage")
async def storage_usage(service: PlateService = Depends(get_service)):
    usage = service.storage_usage()
    return {"count": usage.count, "total_bytes": usage.total_bytes, "total_size": usage.label}
