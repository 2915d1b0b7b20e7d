"""
Recipient Scheduler
Assigns each recipient a send date on a linear ramp across the campaign window
"""
import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


class RecipientScheduler:
    """
    Deterministic linear ramp.

    No window (or send-by == launch): everyone is sent at launch.
    Otherwise recipient i gets launch + floor(minutes_per_recipient * i) minutes,
    minute granularity because the engine polls once per minute.
    """

    def send_date_for(
        self,
        index: int,
        total_recipients: int,
        launch_date: datetime,
        send_by_date: Optional[datetime]
    ) -> datetime:
        if send_by_date is None or send_by_date == launch_date or total_recipients <= 0:
            return launch_date

        total_minutes = (send_by_date - launch_date).total_seconds() / 60
        minutes_per_recipient = total_minutes / total_recipients
        offset = math.floor(minutes_per_recipient * index)
        return launch_date + timedelta(minutes=offset)

    def schedule(
        self,
        recipients: Sequence[T],
        launch_date: datetime,
        send_by_date: Optional[datetime]
    ) -> List[Tuple[T, datetime]]:
        """Pair every recipient with its send date, preserving order."""
        total = len(recipients)
        return [
            (recipient, self.send_date_for(idx, total, launch_date, send_by_date))
            for idx, recipient in enumerate(recipients)
        ]
