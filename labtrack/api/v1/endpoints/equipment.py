# labtrack/api/v1/endpoints/equipment.py
from typing import List

from fastapi import APIRouter, Body, Depends, Path, Request, status
from loguru import logger

from labtrack.api.deps import get_equipment_service
from labtrack.core.equipment import EquipmentService
from labtrack.core.rate_limiter import limiter
from labtrack.models.equipment import Equipment

router = APIRouter(
    prefix="/equipment",
    tags=["Equipment"]
)


@router.post("/", response_model=Equipment, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_equipment(
    request: Request,
    equipment_in: Equipment.Create = Body(...),
    service: EquipmentService = Depends(get_equipment_service),
):
    """Register equipment. All units start available."""
    logger.info(f"Creating equipment '{equipment_in.name}' x{equipment_in.total_quantity}.")
    return await service.create(equipment_in)


@router.get("/", response_model=List[Equipment])
async def read_equipment_list(service: EquipmentService = Depends(get_equipment_service)):
    return await service.list_all()


@router.get("/{equipment_id}", response_model=Equipment)
async def read_equipment(
    equipment_id: str = Path(...),
    service: EquipmentService = Depends(get_equipment_service),
):
    return await service.get(equipment_id)


@router.patch("/{equipment_id}", response_model=Equipment)
@limiter.limit("60/minute")
async def update_equipment(
    request: Request,
    equipment_id: str = Path(...),
    equipment_in: Equipment.Update = Body(...),
    service: EquipmentService = Depends(get_equipment_service),
):
    """Update descriptive fields; a new total_quantity is applied to the available count."""
    logger.info(f"Updating equipment '{equipment_id}': {sorted(equipment_in.model_fields_set)}")
    return await service.update(equipment_id, equipment_in)


@router.delete("/{equipment_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_equipment(
    request: Request,
    equipment_id: str = Path(...),
    service: EquipmentService = Depends(get_equipment_service),
):
    """Refused while an active transaction still references the equipment."""
    logger.info(f"Deleting equipment '{equipment_id}'.")
    await service.delete(equipment_id)
    return None
