"""
Stay-date window generation
"""

from datetime import date, timedelta
from typing import List, Optional
from schemas.refresh import Window


def generate_windows(horizon_days: int, today: Optional[date] = None) -> List[Window]:
    """
    Build the one-night windows to evaluate for a source.

    Window i is (today + i + 1, today + i + 2) for i in [0, horizon_days),
    so the first window starts tomorrow. A non-positive horizon yields no
    windows.
    """
    if horizon_days <= 0:
        return []

    today = today or date.today()
    return [
        Window(
            check_in=today + timedelta(days=offset + 1),
            check_out=today + timedelta(days=offset + 2),
        )
        for offset in range(horizon_days)
    ]
