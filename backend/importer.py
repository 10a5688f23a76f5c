"""
Spreadsheet import: turn worksheet rows into workers and stays.

Header names in real files are localized and inconsistent, so each row is
first resolved into an ImportRow through a fixed alias table; nothing after
resolve_row() looks at raw headers again.

Matching is deliberately strict: a row is the same person as a stored worker
only when lowercase name, date of birth and phone all agree. Existing fields
are filled in when blank, never overwritten. A worker who already holds a
current stay is reported, not moved.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd
from sqlalchemy.orm import Session

import crud
from errors import StoreError, ValidationError
from schemas import ImportReport, ImportRowError
from utils import clean_text, iso_or_empty, norm_header, normalize_phone, parse_date_to_iso, to_date

logger = logging.getLogger(__name__)

HEADER_ALIASES: Dict[str, List[str]] = {
    "full_name": ["Họ tên", "Ho ten", "Full name", "Tên", "Name"],
    "dob": ["Ngày sinh", "Ngay sinh", "DOB", "Birth", "Birthdate"],
    "phone": ["Số điện thoại", "So dien thoai", "Phone", "SDT", "Sdt"],
    "hometown": ["Quê quán", "Que quan", "Hometown", "Que"],
    "recruiter": ["Người tuyển", "Nguoi tuyen", "Recruiter", "Tuyen"],
    "room_code": ["Phòng", "Phong", "Room", "Room code"],
    "date_in": ["Ngày vào", "Ngay vao", "Date in", "Check in"],
    "date_out": ["Ngày rời", "Ngay roi", "Ngày ra", "Ngay ra", "Date out", "Check out"],
}

HEADER_ROW_OFFSET = 2  # 1-based rows plus the header line


@dataclass
class ImportRow:
    full_name: str
    dob: str = ""
    phone: str = ""
    hometown: str = ""
    recruiter: str = ""
    room_code: str = ""
    date_in: str = ""
    date_out: str = ""


def pick(row: Mapping, aliases: Iterable[str]):
    """First column whose normalized header equals an alias, in alias order."""
    headers = [(norm_header(col), col) for col in row.keys()]
    for alias in aliases:
        key = norm_header(alias)
        for normalized, col in headers:
            if normalized == key:
                return row[col]
    return ""


def resolve_row(row: Mapping) -> ImportRow:
    return ImportRow(
        full_name=clean_text(pick(row, HEADER_ALIASES["full_name"])),
        dob=parse_date_to_iso(pick(row, HEADER_ALIASES["dob"])),
        phone=normalize_phone(pick(row, HEADER_ALIASES["phone"])),
        hometown=clean_text(pick(row, HEADER_ALIASES["hometown"])),
        recruiter=clean_text(pick(row, HEADER_ALIASES["recruiter"])),
        room_code=clean_text(pick(row, HEADER_ALIASES["room_code"])),
        date_in=parse_date_to_iso(pick(row, HEADER_ALIASES["date_in"])),
        date_out=parse_date_to_iso(pick(row, HEADER_ALIASES["date_out"])),
    )


def worker_key(full_name: str, dob: str, phone: str) -> str:
    return f"{clean_text(full_name).lower()}|{clean_text(dob)}|{clean_text(phone)}"


def read_rows(source) -> List[dict]:
    """Read the first worksheet into row dicts keyed by header; blank cells become ""."""
    try:
        df = pd.read_excel(source, sheet_name=0, dtype=object, engine="openpyxl")
    except Exception as e:  # pandas/openpyxl raise a wide range of parse errors
        logger.warning("cannot read spreadsheet: %s", e)
        raise ValidationError(f"Cannot read spreadsheet: {e}", step="parse") from e
    df = df.dropna(how="all")
    records = df.to_dict("records")
    return [{str(k): ("" if _isna(v) else v) for k, v in rec.items()} for rec in records]


def _isna(value) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


class _Snapshot:
    """Room/worker/stay lookups taken once and kept current during the run."""

    def __init__(self, db: Session):
        try:
            rooms = crud.list_rooms(db)
            workers = crud.list_workers(db)
            stays = crud.list_stays(db)
        except StoreError as e:
            raise StoreError(f"Cannot load existing data: {e.message}", step="snapshot") from e

        self.room_id_by_code = {clean_text(r.code): r.id for r in rooms}
        self.workers: Dict[str, dict] = {}
        for w in workers:
            phone = normalize_phone(w.phone)
            self.workers[worker_key(w.full_name, iso_or_empty(w.dob), phone)] = {
                "id": w.id,
                "dob": iso_or_empty(w.dob),
                "phone": phone,
                "hometown": w.hometown or "",
                "recruiter": w.recruiter or "",
            }
        self.active_stay_by_worker: Dict[str, str] = {s.worker_id: s.room_id for s in stays if s.date_out is None}


def _patch_for(stored: dict, row: ImportRow) -> dict:
    patch = {}
    for field in ("hometown", "recruiter", "dob", "phone"):
        value = getattr(row, field)
        if value and not stored.get(field):
            patch[field] = value
    return patch


def reconcile_rows(db: Session, rows: List[Mapping]) -> ImportReport:
    """Apply spreadsheet rows to the store; per-row problems go into the report."""
    snap = _Snapshot(db)
    report = ImportReport(total_rows=len(rows))

    def fail(line: int, name: str, reason: str):
        report.errors.append(ImportRowError(line_number=line, full_name=name, reason=reason))

    for i, raw in enumerate(rows):
        line = i + HEADER_ROW_OFFSET
        row = resolve_row(raw)
        if not row.full_name:
            report.skipped_rows += 1
            continue

        key = worker_key(row.full_name, row.dob, row.phone)
        stored = snap.workers.get(key)
        if stored is None:
            try:
                worker_id = crud.insert_worker(
                    db,
                    full_name=row.full_name,
                    dob=to_date(row.dob),
                    phone=row.phone or None,
                    hometown=row.hometown or None,
                    recruiter=row.recruiter or None,
                )
            except StoreError as e:
                fail(line, row.full_name, f"Could not create worker: {e.message}")
                continue
            report.workers_inserted += 1
            snap.workers[key] = {
                "id": worker_id,
                "dob": row.dob,
                "phone": row.phone,
                "hometown": row.hometown,
                "recruiter": row.recruiter,
            }
        else:
            worker_id = stored["id"]
            patch = _patch_for(stored, row)
            if patch:
                fields = {k: (to_date(v) if k == "dob" else v) for k, v in patch.items()}
                try:
                    crud.update_worker(db, worker_id, **fields)
                except StoreError as e:
                    fail(line, row.full_name, f"Could not update worker: {e.message}")
                else:
                    stored.update(patch)
                    report.workers_updated += 1

        if not (row.room_code and row.date_in):
            continue

        room_id = snap.room_id_by_code.get(row.room_code)
        if not room_id:
            fail(line, row.full_name, f"Room not found: {row.room_code}")
            continue
        if worker_id in snap.active_stay_by_worker:
            fail(line, row.full_name, "Worker is already staying in another room (not moved automatically)")
            continue

        try:
            crud.insert_stay(db, room_id, worker_id, to_date(row.date_in), to_date(row.date_out))
        except StoreError as e:
            fail(line, row.full_name, f"Could not create stay: {e.message}")
            continue
        report.stays_inserted += 1
        if not row.date_out:
            snap.active_stay_by_worker[worker_id] = room_id

    logger.info(
        "import finished: %d rows, %d workers inserted, %d updated, %d stays, %d skipped, %d errors",
        report.total_rows,
        report.workers_inserted,
        report.workers_updated,
        report.stays_inserted,
        report.skipped_rows,
        len(report.errors),
    )
    return report
