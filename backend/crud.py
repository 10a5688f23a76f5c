# crud.py: persistence gateway over the SQLAlchemy session
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from errors import NotFoundError, StoreError
from models import AppSettings, Floor, Room, Stay, Worker
from schemas import DormState, FloorOut, RoomOut, Settings, StayOut, WorkerOut

logger = logging.getLogger(__name__)


def _commit(db: Session, step: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("store write failed (%s): %s", step, e)
        raise StoreError(f"{step}: {e}", step=step) from e


def _read(db: Session, stmt, step: str):
    try:
        return db.execute(stmt).scalars().all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("store read failed (%s): %s", step, e)
        raise StoreError(f"{step}: {e}", step=step) from e


# ----- Listing -----
def list_floors(db: Session) -> List[Floor]:
    return _read(db, select(Floor).order_by(Floor.sort.asc()), "floors")


def list_rooms(db: Session) -> List[Room]:
    return _read(db, select(Room).order_by(Room.sort.asc()), "rooms")


def list_workers(db: Session) -> List[Worker]:
    return _read(db, select(Worker).order_by(Worker.full_name.asc()), "workers")


def list_stays(db: Session) -> List[Stay]:
    return _read(db, select(Stay).order_by(Stay.date_in.desc()), "stays")


def _scalar(db: Session, stmt, step: str):
    try:
        return db.execute(stmt).scalar_one_or_none()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("store read failed (%s): %s", step, e)
        raise StoreError(f"{step}: {e}", step=step) from e


def count_floors(db: Session) -> int:
    return _scalar(db, select(func.count()).select_from(Floor), "floors")


# ----- Lookups -----
def _get(db: Session, model, obj_id: str, label: str):
    try:
        obj = db.get(model, obj_id)
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"{model.__tablename__}: {e}", step=model.__tablename__) from e
    if not obj:
        raise NotFoundError(f"{label} not found.")
    return obj


def get_floor(db: Session, floor_id: str) -> Floor:
    return _get(db, Floor, floor_id, "Floor")


def get_room(db: Session, room_id: str) -> Room:
    return _get(db, Room, room_id, "Room")


def get_worker(db: Session, worker_id: str) -> Worker:
    return _get(db, Worker, worker_id, "Worker")


def get_stay(db: Session, stay_id: str) -> Stay:
    return _get(db, Stay, stay_id, "Stay")


def count_stays_for_worker(db: Session, worker_id: str) -> int:
    return _scalar(db, select(func.count()).select_from(Stay).where(Stay.worker_id == worker_id), "stays")


def find_current_stay(db: Session, worker_id: str) -> Optional[Stay]:
    stmt = select(Stay).where(Stay.worker_id == worker_id, Stay.date_out.is_(None)).limit(1)
    return _scalar(db, stmt, "stays")


# ----- Floors & rooms -----
def insert_floor(db: Session, name: str, sort: int) -> str:
    f = Floor(name=name, sort=sort)
    db.add(f)
    _commit(db, "floors")
    return f.id


def insert_floors(db: Session, floors: Iterable[Dict]) -> List[str]:
    rows = [Floor(name=f["name"], sort=f["sort"]) for f in floors]
    db.add_all(rows)
    _commit(db, "floors")
    return [f.id for f in rows]


def insert_room(db: Session, floor_id: str, code: str, sort: int) -> str:
    r = Room(floor_id=floor_id, code=code, sort=sort)
    db.add(r)
    _commit(db, "rooms")
    return r.id


def insert_rooms(db: Session, rooms: Iterable[Dict], step: str = "rooms") -> List[str]:
    rows = [Room(floor_id=r["floor_id"], code=r["code"], sort=r["sort"]) for r in rooms]
    db.add_all(rows)
    _commit(db, step)
    return [r.id for r in rows]


def update_room_code(db: Session, room_id: str, code: str) -> None:
    get_room(db, room_id).code = code
    _commit(db, "rooms")


def delete_floor(db: Session, floor_id: str) -> None:
    db.delete(get_floor(db, floor_id))  # rooms and their stays go with it
    _commit(db, "floors")


def delete_room(db: Session, room_id: str) -> None:
    db.delete(get_room(db, room_id))
    _commit(db, "rooms")


# ----- Workers -----
def insert_worker(db: Session, **fields) -> str:
    w = Worker(**fields)
    db.add(w)
    _commit(db, "workers")
    return w.id


def update_worker(db: Session, worker_id: str, **fields) -> None:
    w = get_worker(db, worker_id)
    for k, v in fields.items():
        if hasattr(w, k):
            setattr(w, k, v)
    _commit(db, "workers")


def delete_worker(db: Session, worker_id: str) -> None:
    db.delete(get_worker(db, worker_id))
    _commit(db, "workers")


# ----- Stays -----
def insert_stay(db: Session, room_id: str, worker_id: str, date_in: date, date_out: Optional[date] = None) -> str:
    st = Stay(room_id=room_id, worker_id=worker_id, date_in=date_in, date_out=date_out)
    db.add(st)
    _commit(db, "stays")
    return st.id


def update_stay_date_out(db: Session, stay_id: str, date_out: date) -> None:
    get_stay(db, stay_id).date_out = date_out
    _commit(db, "stays")


# ----- Bulk delete (children before parents) -----
def _delete_all(db: Session, model, step: str) -> None:
    try:
        db.execute(delete(model))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("bulk delete failed (%s): %s", step, e)
        raise StoreError(f"{step}: {e}", step=step) from e
    _commit(db, step)


def delete_all_stays(db: Session) -> None:
    _delete_all(db, Stay, "stays")


def delete_all_workers(db: Session) -> None:
    _delete_all(db, Worker, "workers")


def delete_all_rooms(db: Session) -> None:
    _delete_all(db, Room, "rooms")


def delete_all_floors(db: Session) -> None:
    _delete_all(db, Floor, "floors")


# ----- Settings -----
def get_settings(db: Session) -> Optional[dict]:
    try:
        row = db.get(AppSettings, config.SETTINGS_ID)
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"settings: {e}", step="settings") from e
    return dict(row.data or {}) if row else None


def upsert_settings(db: Session, data: dict) -> None:
    row = db.get(AppSettings, config.SETTINGS_ID)
    if not row:
        db.add(AppSettings(id=config.SETTINGS_ID, data=data))
    else:
        row.data = data
    _commit(db, "settings")


# ----- Helpers: snapshots -----
def snapshot_state(db: Session, settings: Optional[Settings] = None) -> DormState:
    floors = list_floors(db)
    rooms = list_rooms(db)
    workers = list_workers(db)
    stays = list_stays(db)

    def s_stay(st: Stay): return StayOut(id=st.id, room_id=st.room_id, worker_id=st.worker_id, date_in=st.date_in, date_out=st.date_out)
    def s_worker(w: Worker): return WorkerOut(id=w.id, full_name=w.full_name, dob=w.dob, phone=w.phone, hometown=w.hometown, recruiter=w.recruiter)

    stays_by_room: Dict[str, List[StayOut]] = {}
    for st in stays:
        stays_by_room.setdefault(st.room_id, []).append(s_stay(st))

    rooms_by_floor: Dict[str, List[RoomOut]] = {}
    for r in rooms:
        rooms_by_floor.setdefault(r.floor_id, []).append(
            RoomOut(id=r.id, floor_id=r.floor_id, code=r.code, sort_order=r.sort, stays=stays_by_room.get(r.id, []))
        )

    return DormState(
        floors=[FloorOut(id=f.id, name=f.name, sort_order=f.sort, rooms=rooms_by_floor.get(f.id, [])) for f in floors],
        workers=[s_worker(w) for w in workers],
        settings=settings or Settings(),
    )
