from dinebell.delta import diff

from fakes import record


def test_added_and_changed_are_split_by_id_and_status() -> None:
    previous = [record("1", "pending")]
    current = [record("1", "confirmed"), record("2", "pending")]

    delta = diff(previous, current)

    assert [r.id for r in delta.added] == ["2"]
    assert [r.id for r in delta.changed] == ["1"]


def test_diff_is_pure_and_repeatable() -> None:
    previous = [record("1", "pending"), record("3", "ready")]
    current = [record("1", "ready"), record("4", "pending")]

    first = diff(previous, current)
    second = diff(previous, current)

    assert first == second
    assert [r.id for r in previous] == ["1", "3"]


def test_same_snapshot_gives_empty_delta() -> None:
    snapshot = [record("1", "pending"), record("2", "ready")]

    delta = diff(snapshot, snapshot)

    assert not delta
    assert delta.added == ()
    assert delta.changed == ()


def test_other_field_changes_are_not_status_changes() -> None:
    previous = [record("1", "pending", is_read=False)]
    current = [record("1", "pending", is_read=True, customerName="Layla")]

    assert not diff(previous, current)


def test_empty_previous_reports_everything_as_added() -> None:
    delta = diff([], [record("1"), record("2")])

    assert [r.id for r in delta.added] == ["1", "2"]


def test_duplicate_ids_last_occurrence_wins() -> None:
    previous = [record("1", "pending")]
    current = [record("1", "pending"), record("2", "pending"), record("1", "delivered")]

    delta = diff(previous, current)

    assert [r.id for r in delta.added] == ["2"]
    assert len(delta.changed) == 1
    assert delta.changed[0].status == "delivered"
