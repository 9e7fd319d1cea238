import secrets
import string
import threading
import time
from typing import Callable, Optional


_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class OrderIdGenerator:
    """
    Генератор идентификаторов заказа

    orderId:     ord_<epoch-millis>_<9 символов base36>
    orderNumber: CC-<epoch-millis>

    Миллисекунды строго возрастают в пределах процесса: два заказа
    в одну миллисекунду получают соседние метки, а не одинаковые.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._clock = clock or _epoch_millis
        self._last = 0
        self._lock = threading.Lock()

    def _next_millis(self) -> int:
        with self._lock:
            now = self._clock()
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now

    def next_ids(self) -> tuple[str, str]:
        millis = self._next_millis()
        suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
        return f"ord_{millis}_{suffix}", f"CC-{millis}"


order_ids = OrderIdGenerator()
