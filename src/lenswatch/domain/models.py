from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InterventionType(str, Enum):
    NETTOYAGE = "Nettoyage"
    REMPLACEMENT = "Remplacement"


class NewIntervention(BaseModel):
    """
    An intervention as entered in the form or read from an import file (no id yet).
    Wire names follow the browser export format (camelCase for the counters).
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, str_strip_whitespace=True)

    machine: str = Field(min_length=1)
    date: dt.date
    intervenant: str = Field(min_length=1)
    type: InterventionType
    lentille: Optional[str] = None  # None -> filled from the machine/lens map on create
    compteur_laser: Optional[str] = Field(default=None, alias="compteurLaser")
    laser_on: Optional[str] = Field(default=None, alias="laserOn")
    commentaire: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, str) and len(value.strip()) > 10:
            # Full ISO timestamps ("2024-01-01T00:00:00.000Z") keep only the calendar day.
            return dt.datetime.fromisoformat(value.strip()).date()
        return value

    @field_validator("compteur_laser", "laser_on", "commentaire", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("lentille", mode="before")
    @classmethod
    def _lens_as_text(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value).strip()

    @property
    def is_cleaning(self) -> bool:
        return self.type == InterventionType.NETTOYAGE

    def with_default_lens(self, lens_for: Callable[[str], str]) -> "NewIntervention":
        if self.lentille is not None:
            return self
        return self.model_copy(update={"lentille": lens_for(self.machine)})

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Intervention(NewIntervention):
    id: str = Field(min_length=1)

    @classmethod
    def from_new(cls, new: NewIntervention, intervention_id: str) -> "Intervention":
        return cls(id=intervention_id, **new.model_dump())

    def without_id(self) -> NewIntervention:
        return NewIntervention(**self.model_dump(exclude={"id"}))

    def searchable_values(self) -> list[str]:
        return [str(v) for v in self.to_wire().values()]


class InterventionFilter(BaseModel):
    """Empty fields mean "no constraint"."""
    search: str = ""
    machine: str = ""
    intervenant: str = ""
    type: str = ""
    lentille: str = ""
    date: str = ""  # prefix: "2024", "2024-01" or "2024-01-15"

    @property
    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class Totals(BaseModel):
    total: int = 0
    nettoyages: int = 0
    remplacements: int = 0


class MonthlyBucket(BaseModel):
    month: str  # YYYY-MM
    nettoyages: int = 0
    remplacements: int = 0


class MachineAlert(BaseModel):
    machine: str
    jours: int
    last_date: dt.date
