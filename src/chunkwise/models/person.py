"""Person record flowing through the CSV processing job."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Person(BaseModel):
    """One input row; ``processed_at`` is stamped by the processor."""

    name: str
    email: str
    age: int
    processed_at: Optional[datetime] = None

    model_config = {"str_strip_whitespace": True}
