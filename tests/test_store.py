"""Tests for the in-memory territory store."""
import pytest

from territory_conquest.core.conquest import InvalidTerritoryError, resolve_overlaps
from territory_conquest.core.geometry import polygon_center, territory_area
from territory_conquest.core.store import InMemoryTerritoryStore
from territory_conquest.models import ConquerResult, Territory

LAT0 = 37.77
LNG0 = -122.42


def make_territory(tid, owner, lng, half=0.001, claimed_at=1000):
    ring = [(lng - half, LAT0 - half), (lng + half, LAT0 - half), (lng + half, LAT0 + half), (lng - half, LAT0 + half)]
    return Territory(
        id=tid,
        owner_id=owner,
        claimed_at=claimed_at,
        area=territory_area(ring),
        center=polygon_center(ring),
        polygon=ring,
    )


class TestBasicOperations:
    def setup_method(self):
        self.store = InMemoryTerritoryStore()

    def test_put_and_get(self):
        t = make_territory("t1", "user-a", LNG0)
        self.store.put(t)
        assert self.store.get("t1") == t
        assert len(self.store) == 1

    def test_get_missing(self):
        assert self.store.get("nope") is None

    def test_delete(self):
        self.store.put(make_territory("t1", "user-a", LNG0))
        assert self.store.delete("t1") is True
        assert self.store.delete("t1") is False
        assert len(self.store) == 0

    def test_put_rejects_invalid(self):
        bad = make_territory("t1", "", LNG0)
        with pytest.raises(InvalidTerritoryError):
            self.store.put(bad)
        assert len(self.store) == 0

    def test_bulk_put_is_all_or_nothing(self):
        good = make_territory("t1", "user-a", LNG0)
        bad = make_territory("t2", "", LNG0)
        with pytest.raises(InvalidTerritoryError):
            self.store.bulk_put([good, bad])
        assert len(self.store) == 0

    def test_all_newest_first(self):
        self.store.bulk_put([
            make_territory("old", "user-a", LNG0, claimed_at=1000),
            make_territory("new", "user-b", LNG0 + 0.01, claimed_at=3000),
            make_territory("mid", "user-a", LNG0 + 0.02, claimed_at=2000),
        ])
        assert [t.id for t in self.store.all()] == ["new", "mid", "old"]

    def test_by_owner_and_total_area(self):
        a1 = make_territory("a1", "user-a", LNG0)
        a2 = make_territory("a2", "user-a", LNG0 + 0.01)
        self.store.bulk_put([a1, a2, make_territory("b1", "user-b", LNG0 + 0.02)])
        assert {t.id for t in self.store.by_owner("user-a")} == {"a1", "a2"}
        assert self.store.total_area("user-a") == pytest.approx(a1.area + a2.area)


class TestApply:
    def setup_method(self):
        self.rival = make_territory("rival", "user-a", LNG0)
        self.victim = make_territory("victim", "user-c", LNG0 + 0.0015, half=0.0002)
        self.store = InMemoryTerritoryStore([self.rival, self.victim])
        self.new = make_territory("new", "user-b", LNG0 + 0.0015, claimed_at=2000)

    def test_commits_conquest(self):
        result = resolve_overlaps(self.new, self.store.all(), now_ms=2000)
        self.store.apply(result)
        assert self.store.get("new") == self.new
        assert self.store.get("victim") is None
        assert self.store.get("rival").area < self.rival.area
        assert len(self.store.invasions()) == 2
        assert [i.invaded_territory_id for i in self.store.invasions("user-a")] == ["rival"]

    def test_invalid_result_changes_nothing(self):
        bad_new = self.new.model_copy(update={"owner_id": ""})
        result = ConquerResult(new_territory=bad_new, deleted_territory_ids=["rival"])
        with pytest.raises(InvalidTerritoryError):
            self.store.apply(result)
        assert self.store.get("rival") == self.rival
        assert self.store.invasions() == []


class TestJsonSnapshots:
    def test_save_and_load(self, tmp_path):
        rival = make_territory("rival", "user-a", LNG0)
        store = InMemoryTerritoryStore([rival])
        store.apply(resolve_overlaps(make_territory("new", "user-b", LNG0 + 0.0015), store.all()))
        path = store.save_json(tmp_path / "nested" / "territories.json")
        assert path.exists()

        loaded = InMemoryTerritoryStore.load_json(path)
        assert len(loaded) == 2
        assert loaded.get("rival") == store.get("rival")
        assert len(loaded.invasions()) == 1
