"""
Pydantic schemas for station endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Station(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    terminal_id: str = Field(..., alias="terminal_name")
    latitude: float = Field(..., alias="lat")
    longitude: float = Field(..., alias="long")


class StationStatus(BaseModel):
    """
    Most recent observation for one station.
    """

    last_update: str
    nb_ebikes: int
    nb_standard_bikes: int
    nb_empty_docks: int


class StationHistoryEntry(BaseModel):
    last_update: str
    nb_standard_bikes: int
    nb_ebikes: int
