"""Tests for the branch distance heuristic and delivery date estimate."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from freshstock_engines.distance import DistanceTable, estimate_delivery_date
from freshstock_kernel.domain.catalog import Branch
from freshstock_kernel.domain.transfer import TransferPriority


def make_branch(city: str, province: str) -> Branch:
    return Branch(uuid4(), city[:3].upper(), city, city=city, province=province)


@pytest.fixture
def table():
    return DistanceTable.build(
        overrides={("DKI Jakarta", "Jawa Barat"): Decimal("50")},
    )


class TestDistanceTable:

    def test_same_city(self, table):
        a = make_branch("Bandung", "Jawa Barat")
        b = make_branch("Bandung", "Jawa Barat")

        assert table.distance_km(a, b) == Decimal("10")

    def test_same_province(self, table):
        a = make_branch("Bandung", "Jawa Barat")
        b = make_branch("Bogor", "Jawa Barat")

        assert table.distance_km(a, b) == Decimal("25")

    def test_province_pair_is_symmetric(self, table):
        jkt = make_branch("Jakarta", "DKI Jakarta")
        bdg = make_branch("Bandung", "Jawa Barat")

        assert table.distance_km(jkt, bdg) == Decimal("50")
        assert table.distance_km(bdg, jkt) == Decimal("50")

    def test_pair_lookup_ignores_case(self, table):
        jkt = make_branch("Jakarta", "dki jakarta")
        bdg = make_branch("Bandung", "JAWA BARAT")

        assert table.distance_km(jkt, bdg) == Decimal("50")

    def test_unknown_pair_uses_default(self, table):
        jkt = make_branch("Jakarta", "DKI Jakarta")
        sby = make_branch("Surabaya", "Jawa Timur")

        assert table.distance_km(jkt, sby) == Decimal("200")

    def test_blank_locations_use_default(self, table):
        a = Branch(uuid4(), "A", "A")
        b = Branch(uuid4(), "B", "B")

        assert table.distance_km(a, b) == Decimal("200")


class TestDeliveryDate:

    @pytest.mark.parametrize(
        "priority,distance,days",
        [
            (TransferPriority.EMERGENCY, "10", 1),
            (TransferPriority.HIGH, "10", 2),
            (TransferPriority.NORMAL, "10", 3),
            (TransferPriority.LOW, "10", 5),
            (TransferPriority.NORMAL, "150", 4),
            (TransferPriority.NORMAL, "250", 5),
            (TransferPriority.NORMAL, "100", 3),
        ],
    )
    def test_days_by_priority_and_distance(self, priority, distance, days):
        start = date(2024, 1, 1)

        result = estimate_delivery_date(Decimal(distance), priority, start)

        assert (result - start).days == days
