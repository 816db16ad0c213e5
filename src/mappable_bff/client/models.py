from __future__ import annotations

from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class Suggestion(BaseModel):
    """One entry of the suggest host's ``results`` list.

    Fields other than ``uri`` and ``title`` are kept as opaque extras.
    """

    model_config = ConfigDict(extra="allow")

    uri: Optional[str] = None
    title: Any = None

    @property
    def display_title(self) -> str:
        if isinstance(self.title, dict):
            return str(self.title.get("text", ""))
        return "" if self.title is None else str(self.title)


class Location(BaseModel):
    """Map viewport; ``center`` is (longitude, latitude)."""

    model_config = ConfigDict(frozen=True)

    center: Tuple[float, float]
    zoom: float


DEFAULT_LOCATION = Location(center=(25.229762, 55.289311), zoom=9)
