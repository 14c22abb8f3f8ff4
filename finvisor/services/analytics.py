"""KPI aggregation and date bucketing over a list of receipts."""
import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

from finvisor.core.errors import FormValidationError
from finvisor.models.client import TeamMember
from finvisor.models.receipt import Receipt, ReceiptStatus
from finvisor.schemas.analytics import ChartAxis, DayBucket, Kpis, MemberStats

ZERO = Decimal("0")

DETAILED_RANGE_DAYS = 7


def _net(receipt: Receipt) -> Decimal:
    if receipt.net_amount is not None:
        return receipt.net_amount
    return (receipt.gross_amount or ZERO) - (receipt.tax_amount or ZERO)


def compute_kpis(receipts: Iterable[Receipt]) -> Kpis:
    """Totals over processed receipts; missing amounts count as zero."""
    kpis = Kpis()
    for receipt in receipts:
        if receipt.status != ReceiptStatus.PROCESSED:
            continue
        kpis.processed_count += 1
        kpis.total_net += _net(receipt)
        kpis.total_tax += receipt.tax_amount or ZERO
        kpis.total_gross += receipt.gross_amount or ZERO
    return kpis


def member_breakdown(receipts: Iterable[Receipt], members: Sequence[TeamMember]) -> list[MemberStats]:
    """Receipt count and VAT per team member, in the members' order."""
    stats = {
        member.id: MemberStats(member_id=member.id, name=member.name, role=member.role)
        for member in members
    }
    for receipt in receipts:
        entry = stats.get(receipt.processed_by or "")
        if entry is None or receipt.status != ReceiptStatus.PROCESSED:
            continue
        entry.receipts_count += 1
        entry.tax_amount += receipt.tax_amount or ZERO
    return list(stats.values())


def _day(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def bucket_by_day(
    receipts: Iterable[Receipt],
    date_from: Union[date, datetime],
    date_to: Union[date, datetime]
) -> list[DayBucket]:
    """One bucket per calendar day of the inclusive range."""
    start, end = _day(date_from), _day(date_to)
    if start > end:
        raise FormValidationError("Start date must be before end date", field="date_from")

    buckets = {}
    current = start
    while current <= end:
        buckets[current] = DayBucket(day=current, label=current.strftime("%d/%m"))
        current += timedelta(days=1)

    for receipt in receipts:
        stamp: Optional[datetime] = receipt.processed_at or receipt.created_at
        if stamp is None:
            continue
        bucket = buckets.get(stamp.date())
        if bucket is None:
            continue
        bucket.count += 1
        bucket.tax += receipt.tax_amount or ZERO

    return list(buckets.values())


def chart_axis(buckets: Sequence[DayBucket], step: int = 25) -> ChartAxis:
    """Y axis rounded up to the next step, with one step of headroom."""
    max_y = max((bucket.tax for bucket in buckets), default=ZERO)
    max_y = max(max_y, ZERO)
    y_max = math.ceil(max_y / step) * step + step
    return ChartAxis(y_max=y_max, ticks=list(range(0, y_max + 1, step)))


def is_detailed_range(buckets: Sequence[DayBucket]) -> bool:
    return len(buckets) <= DETAILED_RANGE_DAYS
