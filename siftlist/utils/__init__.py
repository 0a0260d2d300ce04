from siftlist.utils.arbiter import RequestArbiter
from siftlist.utils.debounce import DebounceTimer
from siftlist.utils.retry import retry_async

__all__ = ["DebounceTimer", "RequestArbiter", "retry_async"]
