# labtrack/api/v1/endpoints/records.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from labtrack.api.deps import get_storage
from labtrack.db.storage import Storage
from labtrack.models.record import Fine, Record

router = APIRouter(tags=["Archive"])


@router.get("/records/", response_model=List[Record])
async def read_records(storage: Storage = Depends(get_storage)):
    """Archived transactions, most recently completed first."""
    return await storage.list_records()


@router.get("/records/student/{student_id}", response_model=List[Record])
async def read_student_records(
    student_id: str = Path(...),
    storage: Storage = Depends(get_storage),
):
    return await storage.list_records(student_id=student_id)


@router.get("/fines/", response_model=List[Fine])
async def read_fines(
    student_id: Optional[str] = Query(None),
    storage: Storage = Depends(get_storage),
):
    return await storage.list_fines(student_id=student_id)
