# occupancy.py: check-in/check-out and structure mutations over the gateway
import functools
import logging
from datetime import date
from typing import Callable, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

import config
import crud
import exporter
import importer
import views
from errors import ConflictError, DormError, NotFoundError, StoreError, ValidationError
from schemas import DormState, OpResult, SearchMatch, Settings, StatsOut, WorkerIn, WorkerPatch
from utils import clean_text, normalize_phone, to_date

logger = logging.getLogger(__name__)

WORKER_FIELDS = ("full_name", "dob", "phone", "hometown", "recruiter")


def operation(fn):
    """Run a mutation, turn DormError into a failed OpResult, then reload state.

    Reload also follows store failures, because multi-step operations may have
    applied some steps before the failing one.
    """

    @functools.wraps(fn)
    def wrapper(self: "DormService", *args, **kwargs) -> OpResult:
        try:
            result = fn(self, *args, **kwargs)
            if not isinstance(result, OpResult):
                result = OpResult.success(result)
        except DormError as e:
            result = OpResult.failure(e)

        if result.ok:
            logger.info("%s ok", fn.__name__)
        elif result.kind == StoreError.kind:
            logger.error("%s failed at %s: %s", fn.__name__, result.step, result.reason)
        else:
            logger.warning("%s rejected (%s): %s", fn.__name__, result.kind, result.reason)

        if result.ok or result.kind == StoreError.kind:
            try:
                self.refresh()
            except StoreError as e:
                logger.error("reload after %s failed: %s", fn.__name__, e)
                if result.ok:
                    return OpResult.failure(e, value=result.value)
        return result

    return wrapper


def _as_date(value, field: str) -> Optional[date]:
    try:
        return to_date(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field}: {value!r}") from e


def _worker_fields(raw: dict) -> dict:
    fields = {}
    for k, v in raw.items():
        if k not in WORKER_FIELDS:
            raise ValidationError(f"Unknown worker field: {k}")
        if k == "dob":
            fields[k] = _as_date(v, "date of birth")
        elif k == "full_name":
            fields[k] = clean_text(v)
        elif k == "phone":
            fields[k] = normalize_phone(v) or None
        else:
            fields[k] = clean_text(v) or None
    return fields


class DormService:
    """Owns the in-memory snapshot and applies every mutation through the gateway.

    There is no local patching: each successful write is followed by a full
    reload from the store.
    """

    def __init__(self, db: Session, clock: Callable[[], date] = date.today):
        self.db = db
        self.clock = clock
        self.settings = Settings()
        self.state = DormState(settings=self.settings)
        self.selected_floor_id: Optional[str] = None

    # ----- Loading -----
    def load(self) -> "DormService":
        self.load_settings()
        self.refresh()
        return self

    def refresh(self) -> DormState:
        self.state = crud.snapshot_state(self.db, settings=self.settings)
        ids = [f.id for f in self.state.floors]
        if self.selected_floor_id not in ids:
            self.selected_floor_id = ids[0] if ids else None
        return self.state

    def select_floor(self, floor_id: str) -> OpResult:
        if not any(f.id == floor_id for f in self.state.floors):
            return OpResult.failure(NotFoundError("Floor not found."))
        self.selected_floor_id = floor_id
        return OpResult.success(floor_id)

    # ----- Settings -----
    def load_settings(self) -> OpResult:
        try:
            stored = crud.get_settings(self.db)
            if stored is None:
                crud.upsert_settings(self.db, Settings().to_store())
                stored = {}
        except StoreError as e:
            logger.error("settings unavailable, using defaults: %s", e)
            self.settings = Settings()
            return OpResult.failure(e, value=self.settings)

        merged = {
            **config.DEFAULT_SETTINGS,
            **stored,
            "about": {**config.DEFAULT_SETTINGS["about"], **(stored.get("about") or {})},
        }
        self.settings = Settings(**merged)
        self.state.settings = self.settings
        return OpResult.success(self.settings)

    @operation
    def save_settings(self, settings: Union[Settings, dict]):
        if isinstance(settings, dict):
            settings = Settings(**settings)
        if "adminPassword" not in settings.model_fields_set:
            settings = settings.model_copy(update={"adminPassword": self.settings.adminPassword})
        lo, hi = config.ROOM_GRID_COLS_RANGE
        if not lo <= settings.roomGridCols <= hi:
            raise ValidationError(f"roomGridCols must be between {lo} and {hi}.")
        crud.upsert_settings(self.db, settings.to_store())
        self.settings = settings
        return settings

    # ----- Floors & rooms -----
    @operation
    def create_floor(self, name: Optional[str] = None):
        n = crud.count_floors(self.db)
        floor_name = clean_text(name) or f"{config.FLOOR_NAME_PREFIX} {n + 1}"
        floor_id = crud.insert_floor(self.db, floor_name, n + 1)
        self.selected_floor_id = floor_id
        return floor_id

    @operation
    def delete_floor(self, floor_id: str):
        crud.delete_floor(self.db, floor_id)
        if self.selected_floor_id == floor_id:
            self.selected_floor_id = None
        return floor_id

    @operation
    def create_room(self, floor_id: str, code: Optional[str] = None):
        floor = crud.get_floor(self.db, floor_id)
        sort = len(floor.rooms) + 1
        return crud.insert_room(self.db, floor_id, clean_text(code) or str(sort), sort)

    def _room_on_floor(self, floor_id: Optional[str], room_id: str):
        room = crud.get_room(self.db, room_id)
        if floor_id and room.floor_id != floor_id:
            raise NotFoundError("Room not found on this floor.")
        return room

    @operation
    def rename_room(self, floor_id: Optional[str], room_id: str, new_code: str):
        code = clean_text(new_code)
        if not code:
            raise ValidationError("Room code cannot be empty.")
        self._room_on_floor(floor_id, room_id)
        crud.update_room_code(self.db, room_id, code)
        return room_id

    @operation
    def delete_room(self, floor_id: Optional[str], room_id: str):
        self._room_on_floor(floor_id, room_id)
        crud.delete_room(self.db, room_id)
        return room_id

    # ----- Workers -----
    @operation
    def create_worker(self, data: Union[WorkerIn, dict]):
        raw = data.model_dump() if isinstance(data, WorkerIn) else dict(data)
        fields = _worker_fields(raw)
        if not fields.get("full_name"):
            raise ValidationError("Full name is required.")
        return crud.insert_worker(self.db, **fields)

    @operation
    def update_worker(self, worker_id: str, patch: Union[WorkerPatch, dict]):
        if isinstance(patch, WorkerPatch):
            raw = patch.model_dump(include=patch.model_fields_set)
        else:
            raw = dict(patch)
        fields = _worker_fields(raw)
        if "full_name" in fields and not fields["full_name"]:
            raise ValidationError("Full name cannot be empty.")
        crud.get_worker(self.db, worker_id)
        if fields:
            crud.update_worker(self.db, worker_id, **fields)
        return worker_id

    @operation
    def delete_worker(self, worker_id: str):
        crud.get_worker(self.db, worker_id)
        n = crud.count_stays_for_worker(self.db, worker_id)
        if n:
            raise ConflictError(f"Worker has {n} stay record(s) and cannot be deleted.")
        crud.delete_worker(self.db, worker_id)
        return worker_id

    # ----- Stays -----
    @operation
    def check_in(self, room_id: str, worker_id: str, date_in=None):
        crud.get_room(self.db, room_id)
        worker = crud.get_worker(self.db, worker_id)
        active = crud.find_current_stay(self.db, worker_id)
        if active:
            where = active.room_rel.code if active.room_rel else active.room_id
            raise ConflictError(f"{worker.full_name} is already staying in room {where}.")
        day = _as_date(date_in, "check-in date") or self.clock()
        return crud.insert_stay(self.db, room_id, worker_id, day)

    @operation
    def check_out(self, stay_id: str, date_out=None):
        stay = crud.get_stay(self.db, stay_id)
        if stay.date_out is not None:
            raise ConflictError("Stay is already closed.")
        day = _as_date(date_out, "check-out date") or self.clock()
        if day < stay.date_in:
            raise ValidationError(f"Check-out date {day} is before check-in date {stay.date_in}.")
        crud.update_stay_date_out(self.db, stay_id, day)
        return stay_id

    # ----- Bulk -----
    @operation
    def initialize_structure(self, floor_count: int, rooms_per_floor: int, start_code: int):
        def valid(n, hi=None):
            return isinstance(n, int) and not isinstance(n, bool) and n > 0 and (hi is None or n <= hi)

        if not valid(floor_count, config.MAX_FLOORS):
            raise ValidationError(f"Floor count must be between 1 and {config.MAX_FLOORS}.")
        if not valid(rooms_per_floor, config.MAX_ROOMS_PER_FLOOR):
            raise ValidationError(f"Rooms per floor must be between 1 and {config.MAX_ROOMS_PER_FLOOR}.")
        if not valid(start_code):
            raise ValidationError("Start code must be a positive integer.")
        if crud.count_floors(self.db) > 0:
            raise ConflictError("Dormitory is already initialized; reset it before initializing again.")

        floor_ids = crud.insert_floors(
            self.db,
            [{"name": f"{config.FLOOR_NAME_PREFIX} {i + 1}", "sort": i + 1} for i in range(floor_count)],
        )
        rooms = [
            {
                "floor_id": floor_ids[i // rooms_per_floor],
                "code": str(start_code + i),
                "sort": i % rooms_per_floor + 1,
            }
            for i in range(floor_count * rooms_per_floor)
        ]
        batch = config.ROOM_INSERT_BATCH
        batches = (len(rooms) + batch - 1) // batch
        for k in range(batches):
            crud.insert_rooms(self.db, rooms[k * batch:(k + 1) * batch], step=f"rooms batch {k + 1}/{batches}")
        logger.info("initialized %d floors, %d rooms from code %d", floor_count, len(rooms), start_code)
        return {"floor_ids": floor_ids, "room_count": len(rooms)}

    @operation
    def reset_all(self):
        steps: List[Tuple[str, Callable[[Session], None]]] = [
            ("stays", crud.delete_all_stays),
            ("workers", crud.delete_all_workers),
            ("rooms", crud.delete_all_rooms),
            ("floors", crud.delete_all_floors),
        ]
        completed: List[str] = []
        for name, step in steps:
            try:
                step(self.db)
            except StoreError as e:
                return OpResult.failure(StoreError(f"Reset stopped at {name}: {e.message}", step=name), value={"completed": completed})
            completed.append(name)
        self.selected_floor_id = None
        return {"completed": completed}

    # ----- Import / export -----
    @operation
    def import_workbook(self, source):
        rows = importer.read_rows(source)
        return importer.reconcile_rows(self.db, rows)

    @operation
    def import_rows(self, rows: list):
        return importer.reconcile_rows(self.db, rows)

    def export_workbook(self) -> Tuple[str, bytes]:
        sheets = exporter.build_sheets(self.state)
        return exporter.export_filename(self.clock()), exporter.write_workbook(sheets)

    # ----- Read views -----
    def stats(self) -> StatsOut:
        floors, workers = self.state.floors, self.state.workers
        total_rooms, total_current = views.totals(floors)
        return StatsOut(
            total_rooms=total_rooms,
            total_current_workers=total_current,
            histogram=views.occupancy_histogram(floors),
            recruiters=views.recruiter_aggregation(floors, workers),
            roster=views.recruiter_roster(floors, workers),
        )

    def search(self, query: str) -> SearchMatch:
        worker_ids, room_ids = views.global_search(query, self.state.workers, self.state.floors)
        return SearchMatch(worker_ids=sorted(worker_ids), room_ids=sorted(room_ids))
