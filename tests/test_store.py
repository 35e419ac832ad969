"""Tests for the item store: conditional writes and index pagination."""
import pytest

from squares.errors import ConditionFailedError
from squares.services.store import Record


def _record(pk, sk, **kwargs):
    return Record(pk=pk, sk=sk, data={"pk": pk, "sk": sk}, **kwargs)


@pytest.mark.asyncio
async def test_put_if_not_exists(store):
    await store.put(_record("A", "1"), if_not_exists=True)
    with pytest.raises(ConditionFailedError):
        await store.put(_record("A", "1"), if_not_exists=True)
    await store.put(Record(pk="A", sk="1", data={"v": 2}))
    assert await store.get("A", "1") == {"v": 2}


@pytest.mark.asyncio
async def test_update_with_expectations(store):
    await store.put(Record(pk="A", sk="1", data={"status": "available", "x": 1}))
    updated = await store.update("A", "1", {"status": "requested"}, expect={"status": "available"}, remove=("x",))
    assert updated == {"status": "requested"}
    with pytest.raises(ConditionFailedError):
        await store.update("A", "1", {"status": "requested"}, expect={"status": "available"})
    with pytest.raises(ConditionFailedError):
        await store.update("A", "missing", {"status": "x"})


@pytest.mark.asyncio
async def test_expect_none_means_absent(store):
    await store.put(Record(pk="A", sk="1", data={}))
    await store.update("A", "1", {"numbers": [1]}, expect={"numbers": None})
    with pytest.raises(ConditionFailedError):
        await store.update("A", "1", {"numbers": [2]}, expect={"numbers": None})
    assert (await store.get("A", "1"))["numbers"] == [1]


@pytest.mark.asyncio
async def test_query_and_count_by_prefix(store):
    await store.batch_put(
        [_record("G", f"SQUARE#{i}") for i in range(5)] + [_record("G", "REQUEST#r1")],
        batch_size=2,
    )
    assert await store.count("G", "SQUARE#") == 5
    assert [d["sk"] for d in await store.query("G", "REQUEST#")] == ["REQUEST#r1"]
    assert await store.delete_partition("G") == 6
    assert await store.count("G") == 0


@pytest.mark.asyncio
async def test_delete(store):
    await store.put(_record("A", "1"))
    assert await store.delete("A", "1") is True
    assert await store.delete("A", "1") is False


@pytest.mark.asyncio
async def test_index_pages_have_no_gaps_or_repeats(store):
    """Items sharing a sort key are still split correctly across pages."""
    records = [
        _record(f"P{i}", "DETAILS", gsi1pk="GAME#setup", gsi1sk="2030-01-01" if i % 2 else f"2030-01-0{i % 9 + 1}")
        for i in range(7)
    ]
    await store.batch_put(records)

    seen = []
    start_key = None
    while True:
        page = await store.query_index("GSI1", "GAME#setup", limit=3, start_key=start_key)
        seen.extend(d["pk"] for d in page.items)
        if page.last_key is None:
            break
        start_key = page.last_key
    assert sorted(seen) == [f"P{i}" for i in range(7)]
    assert len(seen) == 7


@pytest.mark.asyncio
async def test_last_page_exactly_full_has_no_key(store):
    await store.batch_put([_record(f"P{i}", "X", gsi1pk="K", gsi1sk=str(i)) for i in range(4)])
    page = await store.query_index("GSI1", "K", limit=4)
    assert len(page.items) == 4
    assert page.last_key is None


@pytest.mark.asyncio
async def test_descending_order(store):
    await store.batch_put([_record(f"P{i}", "X", gsi1pk="K", gsi1sk=str(i)) for i in range(3)])
    page = await store.query_index("GSI1", "K", forward=False)
    assert [d["pk"] for d in page.items] == ["P2", "P1", "P0"]


@pytest.mark.asyncio
async def test_start_key_from_other_query_rejected(store):
    with pytest.raises(ValueError):
        await store.query_index("GSI1", "K", limit=1, start_key={"gsi1pk": "OTHER", "gsi1sk": "1", "pk": "a", "sk": "b"})
