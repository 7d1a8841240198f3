import pytest

from yuchain.land import (
    BronzeNotFound,
    Land,
    ReadingNotFound,
    TripodNotFound,
    WritingNotFound,
)
from yuchain.tripod import Bronze, Tripod


def transfer(ctx):
    ctx.append("transfer")


def query_balance(ctx):
    ctx.append("query")


@pytest.fixture
def land():
    registry = Land()
    asset = Tripod("asset")
    asset.set_writings(transfer)
    asset.set_readings(query_balance)
    asset.set_instance(asset)
    poa = Tripod("poa")
    registry.set_tripods(asset, poa)
    return registry


def test_get_tripod_by_name(land):
    asset = land.get_tripod("asset")
    assert asset.name() == "asset"
    assert land.get_tripod("missing") is None


def test_get_tripod_instance(land):
    assert land.get_tripod_instance("asset") is land.get_tripod("asset")
    assert land.get_tripod_instance("missing") is None


def test_get_writing_and_reading(land):
    assert land.get_writing("asset", "transfer") is transfer
    assert land.get_reading("asset", "query_balance") is query_balance


def test_missing_tripod_raises(land):
    with pytest.raises(TripodNotFound):
        land.get_writing("missing", "transfer")
    with pytest.raises(TripodNotFound):
        land.get_reading("missing", "query_balance")


def test_missing_writing_or_reading_raises(land):
    with pytest.raises(WritingNotFound) as excinfo:
        land.get_writing("asset", "mint")
    assert excinfo.value.missing == "mint"
    with pytest.raises(ReadingNotFound):
        land.get_reading("asset", "transfer")


def test_iteration_keeps_registration_order(land):
    assert [tripod.name() for tripod in land] == ["asset", "poa"]
    assert len(land) == 2
    assert "poa" in land
    assert "missing" not in land


def test_items_pairs_names_with_tripods(land):
    pairs = dict(land.items())
    assert set(pairs) == {"asset", "poa"}
    assert pairs["poa"] is land.get_tripod("poa")


def test_bronzes_by_name():
    registry = Land()
    cache = Bronze("cache")
    registry.set_bronzes(cache)
    assert registry.get_bronze("cache") is cache
    assert registry.get_bronze("missing") is None


def test_errors_are_lookup_errors():
    assert issubclass(BronzeNotFound, LookupError)
    assert "cache" in str(BronzeNotFound("cache"))