from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def format_timestamp(dt: Optional[datetime], tz_name: str = "UTC", time_format: str = "%d.%m.%Y %H:%M:%S") -> str:
    if dt is None:
        dt = datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_local = dt.astimezone(ZoneInfo(tz_name))
    tz_abbr = dt_local.strftime("%Z")
    return dt_local.strftime(f"{time_format} {tz_abbr}")
