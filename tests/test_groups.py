import json

SAMPLE = "Host web\n\nHost db\n\nHost cache\n"


def _names(store):
    return [group.name for group in store.groups]


def test_add_rename_delete_group(make_store, tmp_path):
    store = make_store(SAMPLE)
    group = store.add_group("Prod")

    store.rename_group(group, "Production")
    assert _names(store) == ["Production"]

    store.move_host(store.find_host("web"), group)
    store.delete_group(group)

    assert store.groups == []
    # Members stay in the config when their group goes away
    assert store.find_host("web") is not None
    assert json.loads((tmp_path / "groups.json").read_text()) == []


def test_groups_persist_across_loads(make_store):
    store = make_store(SAMPLE)
    group = store.add_group("Prod")
    store.move_host(store.find_host("db"), group)

    reloaded = make_store()

    assert _names(reloaded) == ["Prod"]
    assert reloaded.groups[0].id == group.id
    assert [h.alias for h in reloaded.hosts_in_group(reloaded.groups[0])] == ["db"]


def test_move_group_up_and_down(make_store):
    store = make_store(SAMPLE)
    a = store.add_group("A")
    b = store.add_group("B")
    c = store.add_group("C")

    store.move_group_up(c)
    assert _names(store) == ["A", "C", "B"]

    store.move_group_down(a)
    assert _names(store) == ["C", "A", "B"]

    # Edges are no-ops
    store.move_group_up(store.groups[0])
    store.move_group_down(b)
    assert _names(store) == ["C", "A", "B"]


def test_move_host_leaves_previous_group(make_store):
    store = make_store(SAMPLE)
    first = store.add_group("First")
    second = store.add_group("Second")
    web = store.find_host("web")

    store.move_host(web, first)
    store.move_host(web, second)

    assert first.host_ids == []
    assert second.host_ids == ["web"]
    assert store.group_for_host(web) is second


def test_remove_host_from_groups(make_store):
    store = make_store(SAMPLE)
    group = store.add_group("G")
    web = store.find_host("web")
    store.move_host(web, group)

    store.remove_host_from_groups(web)

    assert group.host_ids == []
    assert store.group_for_host(web) is None


def test_ungrouped_hosts_keep_config_order(make_store):
    store = make_store(SAMPLE)
    group = store.add_group("G")
    store.move_host(store.find_host("db"), group)

    assert [h.alias for h in store.ungrouped_hosts()] == ["web", "cache"]


def test_groups_sorted_by_name_does_not_reorder_store(make_store):
    store = make_store(SAMPLE)
    store.add_group("beta")
    store.add_group("Alpha")

    assert [g.name for g in store.groups_sorted_by_name()] == ["Alpha", "beta"]
    assert _names(store) == ["beta", "Alpha"]


def test_lookup_helpers(make_store):
    store = make_store(SAMPLE)
    group = store.add_group("Prod")

    assert store.get_group(group.id) is group
    assert store.find_group("Prod") is group
    assert store.find_group("nope") is None
