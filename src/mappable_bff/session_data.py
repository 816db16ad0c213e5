# src/mappable_bff/session_data.py

import time
from typing import Optional

from pydantic import BaseModel, Field


class SessionData(BaseModel):
    """
    Represents the data stored server-side for a browser session.
    Only the signed session ID is stored in the browser cookie; the API key
    never leaves the server.
    """
    api_key: Optional[str] = Field(default=None, repr=False)
    created_at: float = Field(default_factory=time.time)
    last_seen: float = Field(default_factory=time.time)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)
