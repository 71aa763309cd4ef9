from typing import List, Tuple

from florist.utils.logging import get_logger

log = get_logger("mail")


class MockNotifier:
    """
    Records every notification instead of sending it.

    `fail=True` makes every send raise, which lets tests check that a broken
    mail server never rolls back an order change.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []

    def _record(self, kind: str, order, extra: str = "") -> bool:
        if self.fail:
            raise ConnectionError(f"mock notifier configured to fail ({kind})")
        self.sent.append((kind, order.order_number, extra))
        log.info("%s for order %s %s", kind, order.order_number, extra)
        return True

    def send_order_confirmation(self, order) -> bool:
        return self._record("order_confirmation", order, order.customer_info.get("email", ""))

    def send_new_order_notification(self, order) -> bool:
        return self._record("new_order_admin", order)

    def send_order_status_email(self, order, new_status: str, note=None, previous_status=None) -> bool:
        return self._record("status_update", order, f"{previous_status}->{new_status}")

    def kinds(self) -> List[str]:
        return [kind for kind, _, _ in self.sent]

    def reset(self):
        self.sent.clear()

    def health_check(self) -> bool:
        return not self.fail
