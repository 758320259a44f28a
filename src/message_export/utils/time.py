from datetime import datetime
from typing import Optional


def sortable_prefix(now: Optional[datetime] = None) -> str:
    """Local-time prefix in the form Y-M-D-H-m-s, components not zero padded."""
    now = now or datetime.now()
    return f"{now.year}-{now.month}-{now.day}-{now.hour}-{now.minute}-{now.second}"


def artifact_name(base_name: str, now: Optional[datetime] = None) -> str:
    """Build the export file name, e.g. 2024-8-4-9-5-7-SMMS.json."""
    return f"{sortable_prefix(now)}-{base_name}"
