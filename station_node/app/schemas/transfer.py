"""
Overnight transfer schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Dict, List, Optional


class TransferReport(BaseModel):
    """
    Outcome of one overnight -> regular transfer run.

    skipped is set when another run was already in flight; nothing was
    touched in that case.
    """
    skipped: bool = False
    transferred: int = 0
    destinations: Dict[str, int] = {}
    failed_destinations: List[str] = []
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
