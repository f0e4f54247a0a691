"""Tests for post-event reconciliation of overlapping claims."""
import pytest

from territory_conquest.core.conquest import InvalidTerritoryError, reconcile_territories
from territory_conquest.core.geometry import polygon_center, territory_area
from territory_conquest.models import Territory

LAT0 = 37.77
LNG0 = -122.42


def rect(lng0, lat0, lng1, lat1):
    return [(lng0, lat0), (lng1, lat0), (lng1, lat1), (lng0, lat1)]


def claim(tid, owner, ring, claimed_at, owner_name=None):
    return Territory(
        id=tid,
        owner_id=owner,
        owner_name=owner_name,
        activity_id=f"act-{tid}",
        claimed_at=claimed_at,
        area=territory_area(ring),
        center=polygon_center(ring),
        polygon=ring,
    )


class TestReconcile:
    def setup_method(self):
        self.a = claim("a", "user-a", rect(LNG0, LAT0, LNG0 + 0.002, LAT0 + 0.002), 1000)
        self.b = claim("b", "user-b", rect(LNG0 + 0.001, LAT0, LNG0 + 0.003, LAT0 + 0.002), 2000, "Bee")

    def test_later_claim_trims_earlier(self):
        result = reconcile_territories([self.a, self.b], now_ms=9000)
        assert [t.id for t in result.modified_territories] == ["a"]
        assert result.modified_territories[0].area == pytest.approx(self.a.area / 2, rel=1e-3)
        assert result.deleted_territory_ids == []
        assert len(result.invasions) == 1
        assert result.invasions[0].invader_user_id == "user-b"
        assert result.invasions[0].invader_username == "Bee"

    def test_input_order_does_not_matter(self):
        forward = reconcile_territories([self.a, self.b], now_ms=9000)
        backward = reconcile_territories([self.b, self.a], now_ms=9000)
        assert [t.id for t in backward.modified_territories] == ["a"]
        assert backward.total_conquered_area == pytest.approx(forward.total_conquered_area)

    def test_inputs_not_mutated(self):
        before = (self.a.model_dump(), self.b.model_dump())
        reconcile_territories([self.a, self.b])
        assert (self.a.model_dump(), self.b.model_dump()) == before

    def test_later_enclosing_claim_destroys_earlier(self):
        small = claim("s", "user-a", rect(LNG0 + 0.0005, LAT0 + 0.0005, LNG0 + 0.001, LAT0 + 0.001), 1000)
        big = claim("g", "user-b", rect(LNG0, LAT0, LNG0 + 0.002, LAT0 + 0.002), 2000)
        result = reconcile_territories([big, small])
        assert result.deleted_territory_ids == ["s"]
        assert result.modified_territories == []
        assert result.invasions[0].territory_was_destroyed is True

    def test_later_enclosed_claim_punches_hole(self):
        big = claim("g", "user-a", rect(LNG0, LAT0, LNG0 + 0.002, LAT0 + 0.002), 1000)
        small = claim("s", "user-b", rect(LNG0 + 0.0005, LAT0 + 0.0005, LNG0 + 0.001, LAT0 + 0.001), 2000)
        result = reconcile_territories([big, small])
        assert result.deleted_territory_ids == []
        trimmed = result.modified_territories[0]
        assert trimmed.id == "g"
        assert len(trimmed.holes) == 1

    def test_chain_uses_already_trimmed_versions(self):
        c = claim("c", "user-c", rect(LNG0 + 0.002, LAT0, LNG0 + 0.004, LAT0 + 0.002), 3000)
        result = reconcile_territories([self.a, self.b, c])
        by_id = {t.id: t for t in result.modified_territories}
        # after b trims a, c overlaps only b
        assert [i.invaded_territory_id for i in result.invasions].count("a") == 1
        assert "b" in by_id
        assert by_id["b"].area == pytest.approx(self.b.area / 2, rel=1e-3)

    def test_split_rival_reports_every_piece(self):
        wide = claim("w", "user-a", rect(LNG0, LAT0, LNG0 + 0.003, LAT0 + 0.001), 1000)
        band = claim("x", "user-b", rect(LNG0 + 0.001, LAT0 - 0.0005, LNG0 + 0.002, LAT0 + 0.0015), 2000)
        result = reconcile_territories([wide, band])
        assert result.deleted_territory_ids == []
        assert len(result.modified_territories) == 2
        assert {t.owner_id for t in result.modified_territories} == {"user-a"}
        assert "w" in {t.id for t in result.modified_territories}
        remaining = sum(t.area for t in result.modified_territories)
        assert wide.area - remaining == pytest.approx(result.total_conquered_area, rel=1e-3)

    def test_destroyed_split_piece_not_reported_as_deleted(self):
        wide = claim("w", "user-a", rect(LNG0, LAT0, LNG0 + 0.003, LAT0 + 0.001), 1000)
        # off-center band: the larger west piece keeps the id "w"
        band = claim("x", "user-b", rect(LNG0 + 0.0018, LAT0 - 0.0005, LNG0 + 0.0022, LAT0 + 0.0015), 2000)
        # covers the whole east piece
        east = claim("e", "user-c", rect(LNG0 + 0.002, LAT0 - 0.0005, LNG0 + 0.0035, LAT0 + 0.0015), 3000)
        result = reconcile_territories([wide, band, east])
        assert result.deleted_territory_ids == []
        assert [t.id for t in result.modified_territories if t.owner_id == "user-a"] == ["w"]

    def test_same_owner_claims_left_alone(self):
        mine = claim("m", "user-a", rect(LNG0 + 0.001, LAT0, LNG0 + 0.003, LAT0 + 0.002), 2000)
        result = reconcile_territories([self.a, mine])
        assert result.modified_territories == []
        assert result.invasions == []

    def test_invalid_territory_rejected(self):
        bad = self.b.model_copy(update={"owner_id": ""})
        with pytest.raises(InvalidTerritoryError):
            reconcile_territories([self.a, bad])

    def test_empty_input(self):
        result = reconcile_territories([])
        assert result.modified_territories == []
        assert result.total_conquered_area == 0.0
