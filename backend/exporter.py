# exporter.py: snapshot -> four flat sheets -> one .xlsx workbook
from datetime import date
from io import BytesIO
from typing import Dict, List

import pandas as pd

import config
import views
from schemas import DormState
from utils import iso_or_empty

UNKNOWN_WORKER = "(unknown)"

# Workers/Stays headers are importer aliases, so an exported sheet imports back as-is
ROOM_COLUMNS = ["Floor", "Room", "Current workers", "Worker names"]
STATS_COLUMNS = ["Occupants per room", "Rooms"]
WORKER_COLUMNS = ["Full name", "DOB", "Hometown", "Phone", "Recruiter"]
STAY_COLUMNS = ["Floor", "Room", *WORKER_COLUMNS, "Date in", "Date out", "Currently housed"]


def build_sheets(state: DormState) -> Dict[str, List[dict]]:
    by_id = {w.id: w for w in state.workers}

    rooms_sheet = []
    for f in state.floors:
        for r in f.rooms:
            current = views.current_stays(r)
            names = [by_id[s.worker_id].full_name for s in current if s.worker_id in by_id]
            rooms_sheet.append(dict(zip(ROOM_COLUMNS, [f.name, r.code, len(current), ", ".join(names)])))

    stats_sheet = [
        dict(zip(STATS_COLUMNS, [row.occupancy, row.room_count])) for row in views.occupancy_histogram(state.floors)
    ]

    def worker_cells(w):
        if w is None:
            return [UNKNOWN_WORKER, "", "", "", ""]
        return [w.full_name, iso_or_empty(w.dob), w.hometown or "", w.phone or "", w.recruiter or ""]

    workers_sheet = [dict(zip(WORKER_COLUMNS, worker_cells(w))) for w in state.workers]

    stays_sheet = []
    for f in state.floors:
        for r in f.rooms:
            for st in r.stays:
                cells = [
                    f.name,
                    r.code,
                    *worker_cells(by_id.get(st.worker_id)),
                    st.date_in.isoformat(),
                    iso_or_empty(st.date_out),
                    "No" if st.date_out else "Yes",
                ]
                stays_sheet.append(dict(zip(STAY_COLUMNS, cells)))

    return {
        "Rooms": rooms_sheet,
        "Stats": stats_sheet,
        "Workers": workers_sheet,
        "Stays": stays_sheet,
    }


_SHEET_COLUMNS = {"Rooms": ROOM_COLUMNS, "Stats": STATS_COLUMNS, "Workers": WORKER_COLUMNS, "Stays": STAY_COLUMNS}


def write_workbook(sheets: Dict[str, List[dict]]) -> bytes:
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            df = pd.DataFrame(rows, columns=_SHEET_COLUMNS.get(name))
            df.to_excel(writer, sheet_name=name, index=False)
    return buf.getvalue()


def export_filename(today: date) -> str:
    return config.EXPORT_FILENAME_PATTERN.format(date=today.isoformat())
