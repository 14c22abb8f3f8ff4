from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from finvisor.api.deps import get_current_org_id
from finvisor.core.auth import CurrentUser, get_current_user
from finvisor.core.errors import FormValidationError
from finvisor.db.session import get_database
from finvisor.repositories.client_repo import TeamMemberRepository
from finvisor.repositories.receipt_repo import ReceiptRepository
from finvisor.schemas.analytics import ChartResponse, Kpis, MemberStats
from finvisor.schemas.receipt import ALL, ReceiptFilter
from finvisor.services.analytics import (
    bucket_by_day,
    chart_axis,
    compute_kpis,
    is_detailed_range,
    member_breakdown,
)
from finvisor.services.receipt_service import ReceiptService

router = APIRouter()


class KpisResponse(BaseModel):
    kpis: Kpis
    members: List[MemberStats]


async def _period_receipts(current_user, org_id, date_from, date_to, client_id=ALL, member_id=ALL):
    allowed = await ReceiptService.allowed_client_ids(current_user, org_id)
    receipt_filter = ReceiptFilter(
        org_id=org_id,
        date_from=date_from,
        date_to=date_to,
        client_id=client_id,
        member_id=member_id,
        allowed_client_ids=allowed
    )
    db = await get_database()
    return await ReceiptRepository(db).find_for_period(receipt_filter)


@router.get("/kpis", response_model=KpisResponse)
async def get_kpis(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    client_id: str = ALL,
    member_id: str = ALL,
    current_user: CurrentUser = Depends(get_current_user),
    org_id: str = Depends(get_current_org_id)
):
    """Totals and per-member activity for the selected period"""
    receipts = await _period_receipts(current_user, org_id, date_from, date_to, client_id, member_id)
    members = await TeamMemberRepository(await get_database()).list_members(org_id)
    return KpisResponse(kpis=compute_kpis(receipts), members=member_breakdown(receipts, members))


@router.get("/chart", response_model=ChartResponse)
async def get_chart(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    client_id: str = ALL,
    current_user: CurrentUser = Depends(get_current_user),
    org_id: str = Depends(get_current_org_id)
):
    """Receipts and VAT per day over the selected period"""
    if date_from is None or date_to is None:
        raise FormValidationError("Select a date range", field="date_from")

    receipts = await _period_receipts(current_user, org_id, date_from, date_to, client_id)
    buckets = bucket_by_day(receipts, date_from, date_to)
    return ChartResponse(
        buckets=buckets,
        axis=chart_axis(buckets),
        detailed_dates=is_detailed_range(buckets)
    )
