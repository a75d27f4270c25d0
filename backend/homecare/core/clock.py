"""Time sources.

Services take a ``Clock`` instead of calling ``datetime`` directly so that
period rollover and cache expiry can be driven from tests.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
