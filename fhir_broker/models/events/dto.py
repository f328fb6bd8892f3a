from typing import Any

from pydantic import BaseModel


class LogEvent(BaseModel):
    type: str
    detail: str
    timestamp: int
    data: dict[str, Any] = {}
