import base64
import json
import threading

import pytest

from conftest import CollectingSpawner
from features.sub_manager.application.node_collection import NodeCollection
from features.sub_manager.application.ports import HostSignals
from features.sub_manager.domain.models import MutationOutcome, Node, Severity


def _nodes(count, prefix="node"):
    return [{"id": f"{prefix}-{i}", "name": f"{prefix} {i}", "url": f"ss://x@{prefix}{i}:1"} for i in range(count)]


def _vmess(label, port="443"):
    raw = json.dumps({"add": "a.example", "port": port, "id": "u", "ps": label}).encode("utf-8")
    return "vmess://" + base64.b64encode(raw).decode("ascii")


def _make(recorder, items=None, with_persist=True):
    ids = iter(f"gen-{i}" for i in range(1000))
    collection = NodeCollection(recorder.signals(with_persist), id_factory=lambda: next(ids))
    collection.initialize(items or [])
    return collection


def test_initialize_applies_defaults(recorder):
    collection = _make(recorder, [{"name": "a", "url": "ss://a"}, {"id": "b", "name": "b", "url": "ss://b", "enabled": False, "group": "g"}])
    first, second = collection.items
    assert first.id == "gen-0"
    assert first.enabled is True
    assert second.enabled is False
    assert second.extra == {"group": "g"}
    assert collection.total_count == 2
    assert collection.enabled_count == 1


def test_load_snapshot_ignores_identical_snapshot(recorder):
    collection = _make(recorder)
    snapshot = _nodes(3)
    assert collection.load_snapshot(snapshot) is True
    assert collection.load_snapshot([dict(n) for n in snapshot]) is False
    assert collection.load_snapshot(_nodes(2)) is True
    assert collection.total_count == 2


def test_search_by_substring_is_case_insensitive(recorder):
    collection = _make(recorder, [{"id": "1", "name": "Tokyo Fast", "url": "u1"}, {"id": "2", "name": "Osaka", "url": "u2"}])
    collection.search("TOKYO")
    assert [n.id for n in collection.filtered] == ["1"]


def test_search_country_code_matches_aliases(recorder):
    items = [
        {"id": "1", "name": "HK 01", "url": "u1"},
        {"id": "2", "name": "香港 IPLC", "url": "u2"},
        {"id": "3", "name": "🇭🇰 Premium", "url": "u3"},
        {"id": "4", "name": "JP 01", "url": "u4"},
    ]
    collection = _make(recorder, items)
    collection.search("hk")
    assert [n.id for n in collection.filtered] == ["1", "2", "3"]


def test_empty_search_returns_everything(recorder):
    collection = _make(recorder, _nodes(5))
    collection.search("")
    assert collection.filtered == collection.items


def test_search_resets_page(recorder):
    collection = _make(recorder, _nodes(60))
    assert collection.change_page(3)
    collection.search("node")
    assert collection.current_page == 1


def test_update_out_of_search_filter_clamps_page(recorder):
    collection = _make(recorder, [{"id": str(i), "name": f"HK {i}", "url": f"ss://hk{i}"} for i in range(25)])
    collection.search("hk")
    assert collection.change_page(2)
    collection.update({"id": "24", "name": "JP renamed", "url": "ss://hk24"})
    assert collection.total_pages == 1
    assert collection.current_page == 1
    assert len(collection.paginated) == 24


def test_update_inside_filter_keeps_page(recorder):
    collection = _make(recorder, _nodes(60))
    assert collection.change_page(3)
    collection.update({"id": "node-0", "name": "node renamed", "url": "ss://r"})
    assert collection.current_page == 3


def test_pagination_bounds(recorder):
    collection = _make(recorder, _nodes(50))
    assert collection.total_pages == 3
    assert len(collection.paginated) == 24
    assert collection.change_page(4) is False
    assert collection.change_page(0) is False
    assert collection.change_page(3) is True
    assert len(collection.paginated) == 2


def test_empty_collection_has_no_pages(recorder):
    collection = _make(recorder)
    assert collection.total_pages == 0
    assert collection.change_page(1) is False
    assert collection.current_page == 1
    assert collection.paginated == []


def test_add_prepends_and_persists(recorder):
    collection = _make(recorder, _nodes(2))
    result = collection.add({"name": "new", "url": "ss://new"})
    assert result.outcome is MutationOutcome.PERSIST_REQUESTED
    assert collection.items[0].name == "new"
    assert collection.items[0].id == "gen-0"
    assert recorder.persisted == 1
    assert recorder.messages(Severity.SUCCESS) == ["Node added, saving..."]


def test_add_jumps_to_first_page_when_current_page_is_full(recorder):
    collection = _make(recorder, _nodes(48))
    collection.change_page(2)
    collection.add(Node(id="fresh", name="fresh", url="ss://fresh"))
    assert collection.current_page == 1


def test_add_keeps_partial_page(recorder):
    collection = _make(recorder, _nodes(30))
    collection.change_page(2)
    collection.add(Node(id="fresh", name="fresh", url="ss://fresh"))
    assert collection.current_page == 2


def test_add_without_persist_handler_marks_change(recorder):
    collection = _make(recorder, with_persist=False)
    result = collection.add({"name": "n", "url": "ss://n"})
    assert result.outcome is MutationOutcome.CHANGE_MARKED
    assert recorder.changed == 1
    assert recorder.persisted == 0


def test_persist_failure_is_reported_not_raised(recorder):
    def broken():
        raise OSError("disk full")

    signals = recorder.signals()
    signals.persist = broken
    collection = NodeCollection(signals)
    result = collection.add({"name": "n", "url": "ss://n"})
    assert result.outcome is MutationOutcome.PERSIST_REQUESTED
    assert recorder.messages(Severity.ERROR) == ["Save failed: disk full"]


@pytest.mark.asyncio
async def test_slow_persist_runs_after_mutation_returns(recorder):
    release = threading.Event()
    saved = []

    def slow_persist():
        release.wait(5)
        saved.append(True)

    spawner = CollectingSpawner()
    signals = HostSignals(persist=slow_persist, notify_user=recorder.notify, spawner=spawner)
    collection = NodeCollection(signals)
    result = collection.add({"name": "n", "url": "ss://n"})
    assert result.outcome is MutationOutcome.PERSIST_REQUESTED
    assert collection.total_count == 1
    assert saved == []
    assert len(spawner.pending) == 1
    release.set()
    await spawner.run_all()
    assert saved == [True]


@pytest.mark.asyncio
async def test_background_persist_failure_is_reported(recorder):
    def broken():
        raise OSError("disk full")

    spawner = CollectingSpawner()
    collection = NodeCollection(HostSignals(persist=broken, notify_user=recorder.notify, spawner=spawner))
    collection.add({"name": "n", "url": "ss://n"})
    await spawner.run_all()
    assert recorder.messages(Severity.ERROR) == ["Save failed: disk full"]


def test_persist_without_running_loop_is_synchronous(recorder):
    spawner = CollectingSpawner()
    signals = HostSignals(persist=recorder.persist, notify_user=recorder.notify, spawner=spawner)
    NodeCollection(signals).add({"name": "n", "url": "ss://n"})
    assert recorder.persisted == 1
    assert spawner.pending == []


def test_update_replaces_by_id(recorder):
    collection = _make(recorder, _nodes(3))
    result = collection.update({"id": "node-1", "name": "renamed", "url": "ss://r"})
    assert result.outcome is MutationOutcome.CHANGE_MARKED
    assert collection.get("node-1").name == "renamed"
    assert [n.id for n in collection.items] == ["node-0", "node-1", "node-2"]
    assert recorder.changed == 1
    assert recorder.persisted == 0


def test_update_unknown_id_is_noop(recorder):
    collection = _make(recorder, _nodes(1))
    assert collection.update({"id": "missing", "name": "x", "url": "y"}).outcome is MutationOutcome.UNCHANGED
    assert recorder.changed == 0


def test_delete_only_item_on_last_page_steps_back(recorder):
    collection = _make(recorder, _nodes(25))
    collection.change_page(2)
    result = collection.delete("node-24")
    assert result.removed == 1
    assert collection.current_page == 1
    assert recorder.persisted == 1


def test_delete_elsewhere_keeps_page(recorder):
    collection = _make(recorder, _nodes(30))
    collection.change_page(2)
    collection.delete("node-0")
    assert collection.current_page == 2
    assert len(collection.paginated) == 5


def test_delete_unknown_id_is_silent(recorder):
    collection = _make(recorder, _nodes(2))
    assert collection.delete("missing").outcome is MutationOutcome.UNCHANGED
    assert collection.total_count == 2
    assert recorder.persisted == 0


def test_delete_all_resets_state(recorder):
    collection = _make(recorder, _nodes(40))
    collection.search("node")
    collection.change_page(2)
    result = collection.delete_all()
    assert result.removed == 40
    assert collection.total_count == 0
    assert collection.current_page == 1
    assert collection.search_term == ""
    assert recorder.persisted == 1


def test_add_bulk_prepends_in_order(recorder):
    collection = _make(recorder, _nodes(30))
    collection.change_page(2)
    collection.add_bulk([{"name": "b1", "url": "ss://b1"}, {"name": "b2", "url": "ss://b2"}])
    assert [n.name for n in collection.items[:3]] == ["b1", "b2", "node 0"]
    assert collection.current_page == 1
    assert recorder.persisted == 1


def test_deduplicate_keeps_first_occurrence(recorder):
    items = [
        {"id": "a", "name": "A", "url": _vmess("HK 01")},
        {"id": "b", "name": "B", "url": "ss://pw@host:1#B"},
        {"id": "a2", "name": "A'", "url": _vmess("HK renamed")},
        {"id": "b2", "name": "B'", "url": "ss://pw@host:1#other"},
    ]
    collection = _make(recorder, items)
    result = collection.deduplicate()
    assert result.removed == 2
    assert [n.id for n in collection.items] == ["a", "b"]
    assert recorder.persisted == 1


def test_deduplicate_is_idempotent(recorder):
    collection = _make(recorder, [{"id": "a", "url": "ss://x#1"}, {"id": "b", "url": "ss://x#2"}])
    collection.deduplicate()
    second = collection.deduplicate()
    assert second.removed == 0
    assert second.outcome is MutationOutcome.UNCHANGED
    assert recorder.persisted == 1
    assert recorder.messages(Severity.INFO) == ["No duplicate nodes found."]


def test_deduplicate_keeps_malformed_nodes_distinct(recorder):
    collection = _make(recorder, [{"id": "a", "url": "vmess://%%%"}, {"id": "b", "url": "vmess://%%%"}, {"id": "c", "url": "vmess://$$$"}])
    collection.deduplicate()
    assert [n.id for n in collection.items] == ["a", "c"]


def test_deduplicate_clamps_page(recorder):
    items = [{"id": f"d{i}", "name": "dup", "url": "ss://same"} for i in range(30)]
    collection = _make(recorder, items)
    collection.change_page(2)
    collection.deduplicate()
    assert collection.total_pages == 1
    assert collection.current_page == 1


def test_auto_sort_orders_by_region_then_name(recorder):
    items = [{"id": str(i), "name": name, "url": f"u{i}"} for i, name in enumerate(["美国-01", "🇭🇰 HK-02", "Random-99"])]
    collection = _make(recorder, items)
    result = collection.auto_sort()
    assert [n.name for n in collection.items] == ["🇭🇰 HK-02", "美国-01", "Random-99"]
    assert result.outcome is MutationOutcome.PERSIST_REQUESTED


def test_auto_sort_persists_even_when_order_unchanged(recorder):
    collection = _make(recorder, [{"id": "1", "name": "HK 1", "url": "u"}])
    collection.auto_sort()
    collection.auto_sort()
    assert recorder.persisted == 2


def test_deduplicate_survives_deeply_nested_vmess(recorder):
    hostile = "vmess://" + base64.b64encode(b"[" * 100000).decode("ascii")
    collection = _make(recorder, [{"id": "h", "url": hostile}, {"id": "a", "url": "ss://x#a"}, {"id": "b", "url": "ss://x#b"}])
    result = collection.deduplicate()
    assert result.removed == 1
    assert [n.id for n in collection.items] == ["h", "a"]
