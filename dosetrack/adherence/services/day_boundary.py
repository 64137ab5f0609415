"""
Day boundary detection.

Tracks "today" as the local calendar date and announces rollovers.
Checks run on a fixed interval while the process is foregrounded and on
every resume; the resume check is the catch-up path for rollovers missed
while suspended.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import pytz

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
DayChangeListener = Callable[[str, str], None]


def local_clock(timezone_name: Optional[str] = None) -> Clock:
    """
    Build a wall-clock reader.

    Args:
        timezone_name: IANA zone; None uses the device's local time

    Returns:
        Callable returning the current wall-clock datetime
    """
    if not timezone_name:
        return datetime.now

    zone = pytz.timezone(timezone_name)
    return lambda: datetime.now(zone)


class DayBoundaryDetector:
    """
    Derives the current local date and emits (new_date, old_date) on change.

    Any mismatch counts as a rollover, forward or backward.
    """

    DATE_FORMAT = "%Y-%m-%d"

    def __init__(
        self,
        clock: Optional[Clock] = None,
        check_interval: float = 60.0
    ):
        """
        Initialize DayBoundaryDetector.

        Args:
            clock: Wall-clock reader (injectable for tests)
            check_interval: Seconds between foreground checks
        """
        self._clock = clock or datetime.now
        self._check_interval = check_interval
        self._current_date = self._today()
        self._listeners: List[DayChangeListener] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def current_date(self) -> str:
        """Last observed local date (YYYY-MM-DD)."""
        return self._current_date

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def now(self) -> datetime:
        """Current wall-clock time from the injected clock."""
        return self._clock()

    def add_listener(self, listener: DayChangeListener) -> Callable[[], None]:
        """
        Register a rollover listener.

        Returns:
            Function removing the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def check(self) -> bool:
        """
        Recompute today's date and notify listeners on mismatch.

        Returns:
            True if a rollover was emitted
        """
        new_date = self._today()
        if new_date == self._current_date:
            return False

        old_date = self._current_date
        self._current_date = new_date
        logger.info(f"Day changed: {old_date} -> {new_date}")

        for listener in list(self._listeners):
            listener(new_date, old_date)

        return True

    def on_resume(self) -> bool:
        """App foreground/resume hook."""
        logger.debug("Resume check for day boundary")
        return self.check()

    def start(self) -> None:
        """Start the periodic check loop. Must be called from a running event loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Day boundary checks every {self._check_interval}s")

    async def stop(self) -> None:
        """Cancel the periodic check loop and wait for it to finish."""
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Day boundary checks stopped")

    def time_until_midnight(self) -> timedelta:
        """Time left in the current local day. Display only."""
        now = self._clock()
        next_midnight = (now + timedelta(days=1)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        if now.tzinfo is not None and hasattr(now.tzinfo, "normalize"):
            # pytz zones need re-localizing across DST transitions
            next_midnight = now.tzinfo.localize(next_midnight.replace(tzinfo=None))
        return next_midnight - now

    def format_time_until_midnight(self) -> str:
        """Format the remaining time as '3h 12m' or '45m'."""
        total_minutes = int(self.time_until_midnight().total_seconds() // 60)
        hours, minutes = divmod(total_minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._check_interval)
            try:
                self.check()
            except Exception as e:
                # A failing listener must not stop rollover detection
                logger.exception(f"Day boundary listener failed: {e}")

    def _today(self) -> str:
        return self._clock().strftime(self.DATE_FORMAT)
