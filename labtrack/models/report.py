# labtrack/models/report.py
from datetime import datetime
from pydantic import BaseModel, Field


class TransactionStats(BaseModel):
    request: int = Field(default=0)
    ongoing: int = Field(default=0)
    overdue: int = Field(default=0)
    incomplete: int = Field(default=0)
    incomplete_and_overdue: int = Field(default=0)
    outstanding_fines: float = Field(default=0, description="Running fines on live transactions")
    total: int = Field(default=0)


class RecordStats(BaseModel):
    complete: int = Field(default=0)
    complete_and_overdue: int = Field(default=0)
    total: int = Field(default=0)
    total_fines: float = Field(default=0)


class FineStats(BaseModel):
    unpaid_count: int = Field(default=0)
    unpaid_amount: float = Field(default=0)


class EquipmentStats(BaseModel):
    available: int = Field(default=0)
    unavailable: int = Field(default=0)
    maintenance: int = Field(default=0)
    total_units: int = Field(default=0)
    available_units: int = Field(default=0)
    borrowed_units: int = Field(default=0)
    total: int = Field(default=0)


class SummaryReport(BaseModel):
    generated_at: datetime
    transactions: TransactionStats
    records: RecordStats
    fines: FineStats
    equipment: EquipmentStats
