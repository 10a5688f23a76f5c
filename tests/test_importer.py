from collections import Counter
from datetime import date
from io import BytesIO

import pandas as pd
import pytest
from sqlalchemy import select

import crud
import importer
from errors import StoreError, ValidationError
from models import Stay, Worker


def workers(db):
    return db.execute(select(Worker).order_by(Worker.full_name)).scalars().all()


def stays(db):
    return db.execute(select(Stay)).scalars().all()


def test_resolve_row_handles_localized_headers():
    row = importer.resolve_row({
        " Họ tên ": "  Nguyễn Văn An ",
        "ngay_sinh": "5/3/1998",
        "SDT": "090 111 2222",
        "Que quan": "Thanh Hóa",
        "RECRUITER": "Hùng",
        "Phòng": 101,
        "Ngày vào": 45658,
        "Date-out": "",
    })
    assert row == importer.ImportRow(
        full_name="Nguyễn Văn An",
        dob="1998-03-05",
        phone="0901112222",
        hometown="Thanh Hóa",
        recruiter="Hùng",
        room_code="101",
        date_in="2025-01-01",
        date_out="",
    )


def test_first_matching_alias_wins():
    assert importer.pick({"Name": "b", "Họ tên": "a"}, importer.HEADER_ALIASES["full_name"]) == "a"
    assert importer.pick({"Other": "x"}, importer.HEADER_ALIASES["full_name"]) == ""


def test_worker_key_is_name_dob_phone():
    assert importer.worker_key(" An ", "2000-01-01", "") == "an|2000-01-01|"


def test_import_creates_workers_and_stays(dorm, db):
    svc, _ = dorm
    rows = [
        {"Full name": "Phạm Hoa", "DOB": "2001-02-03", "Phone": "0900", "Room": "104", "Date in": "2026-01-02"},
        {"Full name": "", "Room": "101"},
        {"Full name": "Võ Nam", "Room": "106", "Date in": "1/1/2026", "Date out": "15/1/2026"},
        {"Full name": "Đinh Tú"},
    ]
    report = svc.import_rows(rows).value
    assert report.total_rows == 4
    assert report.workers_inserted == 3
    assert report.workers_updated == 0
    assert report.stays_inserted == 2
    assert report.skipped_rows == 1
    assert report.errors == []

    hoa = next(w for w in workers(db) if w.full_name == "Phạm Hoa")
    assert hoa.dob == date(2001, 2, 3)
    nam_stay = next(s for s in stays(db) if s.date_out is not None)
    assert (nam_stay.date_in, nam_stay.date_out) == (date(2026, 1, 1), date(2026, 1, 15))
    assert len(svc.state.workers) == 6


def test_duplicate_rows_make_one_worker_and_one_current_stay(dorm, db):
    svc, _ = dorm
    row = {"Họ tên": "Phạm Hoa", "Ngày sinh": "2001-02-03", "SĐT": "", "Phòng": "101", "Ngày vào": "2026-01-02"}
    report = svc.import_rows([row, dict(row, **{"Phòng": "102"})]).value
    assert report.workers_inserted == 1
    assert report.stays_inserted == 1
    assert len(report.errors) == 1
    err = report.errors[0]
    assert err.line_number == 3
    assert err.full_name == "Phạm Hoa"
    assert "already staying" in err.reason
    current = Counter(s.worker_id for s in stays(db) if s.date_out is None)
    assert max(current.values()) == 1


def test_closed_stay_in_same_run_allows_later_stay(dorm, db):
    svc, _ = dorm
    rows = [
        {"Name": "Hoa", "Room": "101", "Date in": "2025-01-01", "Date out": "2025-06-01"},
        {"Name": "Hoa", "Room": "102", "Date in": "2025-06-02"},
    ]
    report = svc.import_rows(rows).value
    assert report.workers_inserted == 1
    assert report.stays_inserted == 2
    assert report.errors == []


def test_existing_current_stay_blocks_import_stay(dorm, db):
    svc, ids = dorm
    rid = next(r.id for r in svc.state.floors[0].rooms if r.code == "101")
    svc.check_in(rid, ids["Lê Văn Cường"], date(2026, 1, 1))
    report = svc.import_rows([{"Name": "Lê Văn Cường", "Room": "105", "Date in": "2026-02-01"}]).value
    # stored worker has hometown set and no dob/phone, so the key matches
    assert report.workers_inserted == 0
    assert report.stays_inserted == 0
    assert "not moved" in report.errors[0].reason


def test_unknown_room_is_row_error(dorm, db):
    svc, _ = dorm
    report = svc.import_rows([
        {"Name": "Hoa", "Room": "999", "Date in": "2026-01-01"},
        {"Name": "Lan", "Room": "101", "Date in": "2026-01-01"},
    ]).value
    assert [(e.line_number, e.reason) for e in report.errors] == [(2, "Room not found: 999")]
    assert report.workers_inserted == 2
    assert report.stays_inserted == 1


def test_room_without_date_in_creates_no_stay(dorm, db):
    svc, _ = dorm
    report = svc.import_rows([{"Name": "Hoa", "Room": "101", "Date in": "someday"}]).value
    assert report.workers_inserted == 1
    assert report.stays_inserted == 0
    assert stays(db) == []


def test_update_fills_blanks_only(svc, db):
    svc.create_worker({"full_name": "Hoa", "hometown": "Huế"})
    rows = [{"Name": "hoa", "Hometown": "Hà Nội", "Recruiter": "Lan"}]
    report = svc.import_rows(rows).value
    assert report.workers_inserted == 0
    assert report.workers_updated == 1
    w = workers(db)[0]
    assert (w.full_name, w.hometown, w.recruiter) == ("Hoa", "Huế", "Lan")

    again = svc.import_rows(rows).value
    assert again.workers_updated == 0


def test_different_dob_is_a_different_person(svc, db):
    svc.create_worker({"full_name": "Hoa", "dob": "2000-01-01"})
    report = svc.import_rows([{"Name": "Hoa"}, {"Name": "Hoa", "DOB": "2000-01-01"}]).value
    assert report.workers_inserted == 1
    assert len(workers(db)) == 2


def test_write_failure_is_recorded_and_run_continues(dorm, db, monkeypatch):
    svc, _ = dorm
    real_insert = crud.insert_worker

    def flaky(session, **fields):
        if fields["full_name"] == "Bad":
            raise StoreError("workers: constraint failed", step="workers")
        return real_insert(session, **fields)

    monkeypatch.setattr(crud, "insert_worker", flaky)
    report = svc.import_rows([{"Name": "Bad", "Room": "101", "Date in": "2026-01-01"}, {"Name": "Good"}]).value
    assert report.workers_inserted == 1
    assert report.errors[0].line_number == 2
    assert "Could not create worker" in report.errors[0].reason


def test_snapshot_failure_aborts_run(svc, monkeypatch):
    def down(session):
        raise StoreError("rooms: connection refused", step="rooms")

    monkeypatch.setattr(crud, "list_rooms", down)
    res = svc.import_rows([{"Name": "Hoa"}])
    assert not res.ok
    assert res.kind == "store"
    assert res.step == "snapshot"


def test_read_rows_from_workbook():
    buf = BytesIO()
    pd.DataFrame(
        [{"Họ tên": "Hoa", "Phòng": "101", "Ghi chú": None}, {"Họ tên": None, "Phòng": None, "Ghi chú": None},
         {"Họ tên": "Lan", "Phòng": 102, "Ghi chú": "x"}]
    ).to_excel(buf, index=False)
    buf.seek(0)
    rows = importer.read_rows(buf)
    assert len(rows) == 2
    assert rows[0] == {"Họ tên": "Hoa", "Phòng": "101", "Ghi chú": ""}
    assert rows[1]["Phòng"] == 102


def test_read_rows_rejects_garbage():
    with pytest.raises(ValidationError):
        importer.read_rows(BytesIO(b"this is not a workbook"))


def test_import_workbook_reports_parse_failure(svc):
    res = svc.import_workbook(BytesIO(b"nope"))
    assert not res.ok
    assert res.kind == "validation"
