from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from finvisor.core.errors import FormValidationError
from finvisor.models.client import TeamMember
from finvisor.services.analytics import (
    bucket_by_day,
    chart_axis,
    compute_kpis,
    is_detailed_range,
    member_breakdown,
)
from tests.factories import make_receipt


def at(day, hour=10):
    return datetime(2024, 3, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def receipts():
    return [
        make_receipt(1, status="processed", gross_amount="120", tax_amount="20", processed_at=at(1)),
        make_receipt(2, status="processed", gross_amount="60", tax_amount="10", processed_at=at(3),
                     processed_by="member-2"),
        make_receipt(3, status="pending", gross_amount="500", tax_amount="80"),
        make_receipt(4, status="processed", gross_amount=None, tax_amount=None, processed_at=at(3)),
    ]


def test_kpis_count_processed_receipts_only(receipts):
    kpis = compute_kpis(receipts)

    assert kpis.processed_count == 3
    assert kpis.total_gross == Decimal("180")
    assert kpis.total_tax == Decimal("30")
    assert kpis.total_net == Decimal("150")


def test_kpis_of_nothing():
    assert compute_kpis([]).processed_count == 0


def test_member_breakdown_keeps_member_order(receipts):
    members = [
        TeamMember(_id="member-2", name="Bruno", role="assistant"),
        TeamMember(_id="member-1", name="Claire", role="manager"),
        TeamMember(_id="member-3", name="Driss"),
    ]

    stats = member_breakdown(receipts, members)

    assert [s.name for s in stats] == ["Bruno", "Claire", "Driss"]
    assert stats[0].receipts_count == 1
    assert stats[0].tax_amount == Decimal("10")
    assert stats[1].receipts_count == 2
    assert stats[2].receipts_count == 0


def test_bucket_by_day_is_inclusive(receipts):
    buckets = bucket_by_day(receipts, date(2024, 3, 1), date(2024, 3, 4))

    assert [b.label for b in buckets] == ["01/03", "02/03", "03/03", "04/03"]
    assert [b.count for b in buckets] == [2, 0, 2, 0]
    assert buckets[2].tax == Decimal("10")


def test_bucket_by_day_falls_back_to_creation_date():
    receipt = make_receipt(1, created_at=at(2))
    buckets = bucket_by_day([receipt], at(2, 0), at(2, 23))

    assert len(buckets) == 1
    assert buckets[0].count == 1


def test_bucket_by_day_rejects_reversed_range():
    with pytest.raises(FormValidationError):
        bucket_by_day([], date(2024, 3, 5), date(2024, 3, 1))


def test_chart_axis_rounds_up_with_headroom(receipts):
    buckets = bucket_by_day(receipts, date(2024, 3, 1), date(2024, 3, 3))
    buckets[0].tax = Decimal("51")

    axis = chart_axis(buckets)

    assert axis.y_max == 100
    assert axis.ticks == [0, 25, 50, 75, 100]


def test_chart_axis_for_empty_period():
    assert chart_axis([]).ticks == [0, 25]


def test_detailed_range_is_a_week_or_less():
    week = bucket_by_day([], date(2024, 3, 1), date(2024, 3, 7))
    month = bucket_by_day([], date(2024, 3, 1), date(2024, 3, 31))

    assert is_detailed_range(week)
    assert not is_detailed_range(month)
