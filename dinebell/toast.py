from dataclasses import dataclass
from typing import Callable, Optional

from .slot import LatestSlot

ORDERS_PAGE = "Orders"


@dataclass(frozen=True)
class ToastView:
    record_id: str
    title: str
    order_number: str
    customer_name: str
    total: float
    item_count: int


class ToastPresenter:
    """
    Reads the LatestSlot for the new-order toast.

    ``dismiss`` and ``view`` clear the slot (cancelling the pending
    auto-clear). Both are no-ops when the slot no longer holds the toast the
    user acted on, so whichever of dismiss / auto-clear comes second does
    nothing.
    """

    def __init__(self, slot: LatestSlot, navigate: Optional[Callable[[str], None]] = None, title: str = "New order!"):
        self.slot = slot
        self.navigate = navigate
        self.title = title

    def current(self) -> Optional[ToastView]:
        record = self.slot.value
        if record is None:
            return None
        return ToastView(
            record_id=record.id,
            title=self.title,
            order_number=record.order_number,
            customer_name=record.customer_name,
            total=record.total,
            item_count=record.item_count,
        )

    def dismiss(self, record_id: Optional[str] = None) -> bool:
        return self.slot.clear(expected_id=record_id)

    def view(self, record_id: Optional[str] = None) -> bool:
        cleared = self.slot.clear(expected_id=record_id)
        if self.navigate is not None:
            self.navigate(ORDERS_PAGE)
        return cleared


def format_price(amount: float, currency: str = "EGP") -> str:
    return f"{amount:,.2f} {currency}"
