# schemas.py: pydantic shapes for the hydrated state, request payloads and results
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

import config
from errors import DormError


# ----- Hydrated state -----
class StayOut(BaseModel):
    id: str
    room_id: str
    worker_id: str
    date_in: date
    date_out: Optional[date] = None

    @property
    def is_current(self) -> bool:
        return self.date_out is None


class RoomOut(BaseModel):
    id: str
    floor_id: str
    code: str
    sort_order: int = 0
    stays: List[StayOut] = Field(default_factory=list)


class FloorOut(BaseModel):
    id: str
    name: str
    sort_order: int = 0
    rooms: List[RoomOut] = Field(default_factory=list)


class WorkerOut(BaseModel):
    id: str
    full_name: str
    dob: Optional[date] = None
    phone: Optional[str] = None
    hometown: Optional[str] = None
    recruiter: Optional[str] = None


class AboutInfo(BaseModel):
    companyName: str = ""
    address: str = ""
    hotline: str = ""
    email: str = ""
    website: str = ""
    mapUrl: str = ""
    workingHours: str = ""
    services: List[str] = Field(default_factory=list)
    rules: str = ""
    bankInfo: str = ""
    description: str = ""
    adminNotice: str = ""


class Settings(BaseModel):
    siteName: str = config.DEFAULT_SETTINGS["siteName"]
    roomGridCols: int = config.DEFAULT_SETTINGS["roomGridCols"]
    # write-only: never serialized into responses
    adminPassword: str = Field(default=config.DEFAULT_SETTINGS["adminPassword"], exclude=True)
    about: AboutInfo = Field(default_factory=lambda: AboutInfo(**config.DEFAULT_SETTINGS["about"]))

    def to_store(self) -> dict:
        return {**self.model_dump(), "adminPassword": self.adminPassword}


class DormState(BaseModel):
    floors: List[FloorOut] = Field(default_factory=list)
    workers: List[WorkerOut] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)


# ----- Payloads -----
class FloorIn(BaseModel):
    name: Optional[str] = ""


class RoomIn(BaseModel):
    code: Optional[str] = ""


class RoomRename(BaseModel):
    code: str


class WorkerIn(BaseModel):
    full_name: str = ""
    dob: Optional[date] = None
    phone: Optional[str] = None
    hometown: Optional[str] = None
    recruiter: Optional[str] = None


class WorkerPatch(BaseModel):
    """Only fields present in the request body are applied."""

    full_name: Optional[str] = None
    dob: Optional[date] = None
    phone: Optional[str] = None
    hometown: Optional[str] = None
    recruiter: Optional[str] = None


class CheckInIn(BaseModel):
    room_id: str
    worker_id: str
    date_in: Optional[date] = None


class CheckOutIn(BaseModel):
    date_out: Optional[date] = None


class InitStructureIn(BaseModel):
    floor_count: int
    rooms_per_floor: int
    start_code: int


class SignInIn(BaseModel):
    email: str
    password: str


# ----- Results -----
class OpResult(BaseModel):
    ok: bool
    kind: Optional[str] = None
    reason: Optional[str] = None
    step: Optional[str] = None
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "OpResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, err: DormError, value: Any = None) -> "OpResult":
        return cls(ok=False, kind=err.kind, reason=err.message, step=err.step, value=value)


class ImportRowError(BaseModel):
    line_number: int
    full_name: str
    reason: str


class ImportReport(BaseModel):
    total_rows: int = 0
    workers_inserted: int = 0
    workers_updated: int = 0
    stays_inserted: int = 0
    skipped_rows: int = 0
    errors: List[ImportRowError] = Field(default_factory=list)


class HistogramRow(BaseModel):
    occupancy: int
    room_count: int


class RecruiterCount(BaseModel):
    recruiter: str
    worker_count: int


class RosterEntry(BaseModel):
    worker_id: str
    full_name: str
    hometown: str = ""
    recruiter: str
    floor_name: str
    room_code: str
    date_in: date


class SearchMatch(BaseModel):
    worker_ids: List[str] = Field(default_factory=list)
    room_ids: List[str] = Field(default_factory=list)


class StatsOut(BaseModel):
    total_rooms: int
    total_current_workers: int
    histogram: List[HistogramRow]
    recruiters: List[RecruiterCount]
    roster: Dict[str, List[RosterEntry]]
