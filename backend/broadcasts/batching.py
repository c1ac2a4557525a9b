import math
from typing import Iterator, List, Sequence, TypeVar

from .exceptions import InvalidConfiguration

T = TypeVar("T")

# LINE multicast accepts up to 500 user ids per call
LINE_MULTICAST_LIMIT = 500


def chunked(items: Sequence[T], max_batch_size: int) -> Iterator[List[T]]:
    """
    Split `items` into consecutive lists of at most `max_batch_size`, keeping
    order. The size is validated here, not on first iteration.
    """
    if isinstance(max_batch_size, bool) or not isinstance(max_batch_size, int) or max_batch_size <= 0:
        raise InvalidConfiguration(f"max_batch_size must be a positive integer, got {max_batch_size!r}")
    return _chunks(items, max_batch_size)


def _chunks(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for i in range(0, len(items), size):
        yield list(items[i : i + size])


def effective_batch_size(configured: int, provider_limit: int = LINE_MULTICAST_LIMIT) -> int:
    if configured <= 0:
        raise InvalidConfiguration(f"batch size must be positive, got {configured!r}")
    return min(configured, provider_limit)


def sec_for_batch(batch_size: int, rate_per_min: int) -> int:
    """
    Convert a per-minute throttle (messages per minute) into the delay owed
    after a batch. Ex: rate=600/min and batch=300 -> next batch ~30 seconds later.
    """
    if not rate_per_min or rate_per_min <= 0:
        return 0
    per_item_sec = 60.0 / float(rate_per_min)
    return int(math.ceil(batch_size * per_item_sec))
