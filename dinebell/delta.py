from dataclasses import dataclass
from typing import Dict, Iterable, Sequence, Tuple

from .models import NotificationRecord


@dataclass(frozen=True)
class Delta:
    added: Tuple[NotificationRecord, ...] = ()
    changed: Tuple[NotificationRecord, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.added or self.changed)


def index_by_id(records: Iterable[NotificationRecord]) -> Dict[str, NotificationRecord]:
    """
    id -> record, keeping the LAST occurrence of a duplicated id.

    Dict insertion order keeps the position of the first occurrence, so the
    result stays in collection order.
    """
    indexed: Dict[str, NotificationRecord] = {}
    for record in records:
        indexed[record.id] = record
    return indexed


def diff(
    previous: Sequence[NotificationRecord],
    current: Sequence[NotificationRecord],
) -> Delta:
    """
    Compare two successive polls.

    • added   = records of ``current`` whose id is not in ``previous``
    • changed = records present in both whose ``status`` differs

    Pure: no side effects, same inputs give the same output. Suppressing the
    first poll of a context is NOT done here (see NotificationDispatcher).
    """
    before = index_by_id(previous)
    added = []
    changed = []
    for record_id, record in index_by_id(current).items():
        old = before.get(record_id)
        if old is None:
            added.append(record)
        elif old.status != record.status:
            changed.append(record)
    return Delta(added=tuple(added), changed=tuple(changed))
