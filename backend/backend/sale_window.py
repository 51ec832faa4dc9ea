"""
Sale window gate.

Global kill-switch: before the opening instant every signup is refused,
whatever the request contains. No closing instant.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


def format_utc(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix (e.g. 2025-01-01T00:00:00.000Z)"""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class SaleNotOpen:
    """Rejection details returned to the client in the 403 debug payload"""
    current_time: datetime
    sale_start: datetime
    seconds_until_start: int

    def as_debug(self) -> Dict[str, Any]:
        return {
            "current_time_utc": format_utc(self.current_time),
            "sale_start_time_utc": format_utc(self.sale_start),
            "time_until_start_seconds": self.seconds_until_start,
        }


@dataclass(frozen=True)
class SaleWindow:
    start: datetime

    def check(self, now: datetime) -> Optional[SaleNotOpen]:
        """
        Compare now against the opening instant.

        Returns:
            None when the window is open (now >= start)
            SaleNotOpen otherwise, with the wait rounded up to whole seconds
        """
        if now >= self.start:
            return None
        remaining_ms = (self.start - now) // timedelta(milliseconds=1)
        return SaleNotOpen(
            current_time=now,
            sale_start=self.start,
            seconds_until_start=max(0, math.ceil(remaining_ms / 1000)),
        )

