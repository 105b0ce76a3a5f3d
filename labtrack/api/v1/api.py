# labtrack/api/v1/api.py
from fastapi import APIRouter

from labtrack.api.v1.endpoints import equipment, maintenance, records, reports, transactions

api_router_v1 = APIRouter(prefix="/api/v1")

api_router_v1.include_router(transactions.router)
api_router_v1.include_router(equipment.router)
api_router_v1.include_router(records.router)
api_router_v1.include_router(reports.router)
api_router_v1.include_router(maintenance.router)
