from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class Kpis(BaseModel):
    processed_count: int = 0
    total_net: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")  # recoverable VAT
    total_gross: Decimal = Decimal("0")


class MemberStats(BaseModel):
    member_id: str
    name: str
    role: Optional[str] = None
    receipts_count: int = 0
    tax_amount: Decimal = Decimal("0")


class DayBucket(BaseModel):
    day: date
    label: str  # dd/MM
    count: int = 0
    tax: Decimal = Decimal("0")


class ChartAxis(BaseModel):
    y_max: int
    ticks: List[int]


class ChartResponse(BaseModel):
    buckets: List[DayBucket]
    axis: ChartAxis
    detailed_dates: bool  # label every day for ranges of a week or less
