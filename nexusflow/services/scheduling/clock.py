from datetime import datetime, date, time
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nexusflow.utils.datetime_utils import utc_now, to_utc
from nexusflow.utils.logging import get_logger

logger = get_logger()


class UserClock:
    """
    Clock bound to one user's IANA timezone.

    Every cycle and trigger computation goes through this object so that
    tests can pin `now` with `now_fn` and nothing depends on the server's
    local time.
    """

    def __init__(
        self,
        timezone_name: str,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        self.timezone_name = timezone_name
        self.zone = ZoneInfo(timezone_name)
        self._now_fn = now_fn or utc_now

    @classmethod
    def for_timezone(
        cls,
        timezone_name: Optional[str],
        default_timezone: str,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> "UserClock":
        """Build a clock, falling back to `default_timezone` for unknown zones."""
        if timezone_name:
            try:
                return cls(timezone_name, now_fn)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning(
                    f"Unknown timezone '{timezone_name}', falling back to {default_timezone}"
                )
        return cls(default_timezone, now_fn)

    def now(self) -> datetime:
        return to_utc(self._now_fn()).astimezone(self.zone)

    def today(self) -> date:
        return self.now().date()

    def localize(self, dt: Optional[datetime]) -> Optional[datetime]:
        """Express a stored timestamp (naive UTC or aware) in the user's zone."""
        if dt is None:
            return None
        return to_utc(dt).astimezone(self.zone)

    def combine(self, day: date, time_of_day: time) -> datetime:
        """User-local wall time on `day` as an aware instant."""
        return datetime.combine(day, time_of_day, tzinfo=self.zone)
