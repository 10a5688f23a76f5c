# views.py: read-only views derived from a hydrated DormState
from typing import Dict, List, Sequence, Set, Tuple

import config
from schemas import FloorOut, HistogramRow, RecruiterCount, RoomOut, RosterEntry, StayOut, WorkerOut
from utils import vi_sort_key


def current_stays(room: RoomOut) -> List[StayOut]:
    return [s for s in room.stays if s.is_current]


def history_stays(room: RoomOut, limit: int = config.HISTORY_LIMIT) -> List[StayOut]:
    """Closed stays, most recent check-in first."""
    closed = [s for s in room.stays if s.date_out is not None]
    closed.sort(key=lambda s: s.date_in, reverse=True)
    return closed[:limit] if limit else closed


def _rooms(floors: Sequence[FloorOut]):
    for f in floors:
        for r in f.rooms:
            yield f, r


def recruiter_label(worker: WorkerOut) -> str:
    return (worker.recruiter or "").strip() or config.NO_RECRUITER_LABEL


def occupancy_histogram(floors: Sequence[FloorOut]) -> List[HistogramRow]:
    buckets: Dict[int, int] = {}
    for _, r in _rooms(floors):
        n = len(current_stays(r))
        buckets[n] = buckets.get(n, 0) + 1
    max_n = max([3, *buckets.keys()])
    return [HistogramRow(occupancy=i, room_count=buckets.get(i, 0)) for i in range(max_n + 1)]


def recruiter_aggregation(floors: Sequence[FloorOut], workers: Sequence[WorkerOut]) -> List[RecruiterCount]:
    by_id = {w.id: w for w in workers}
    counts: Dict[str, int] = {}
    for _, r in _rooms(floors):
        for st in current_stays(r):
            w = by_id.get(st.worker_id)
            label = recruiter_label(w) if w else config.NO_RECRUITER_LABEL
            counts[label] = counts.get(label, 0) + 1
    # ties: recruiter label in Vietnamese order
    rows = sorted(counts.items(), key=lambda kv: (-kv[1], vi_sort_key(kv[0])))
    return [RecruiterCount(recruiter=k, worker_count=v) for k, v in rows]


def recruiter_roster(floors: Sequence[FloorOut], workers: Sequence[WorkerOut]) -> Dict[str, List[RosterEntry]]:
    by_id = {w.id: w for w in workers}
    roster: Dict[str, List[RosterEntry]] = {}
    for f, r in _rooms(floors):
        for st in current_stays(r):
            w = by_id.get(st.worker_id)
            if not w:
                continue
            label = recruiter_label(w)
            roster.setdefault(label, []).append(
                RosterEntry(
                    worker_id=w.id,
                    full_name=w.full_name,
                    hometown=w.hometown or "",
                    recruiter=label,
                    floor_name=f.name,
                    room_code=r.code,
                    date_in=st.date_in,
                )
            )
    for entries in roster.values():
        entries.sort(key=lambda e: vi_sort_key(e.full_name))
    return roster


def global_search(query: str, workers: Sequence[WorkerOut], floors: Sequence[FloorOut]) -> Tuple[Set[str], Set[str]]:
    """Worker ids whose name contains the query, and the rooms currently housing them."""
    q = (query or "").strip().lower()
    if not q:
        return set(), set()
    worker_ids = {w.id for w in workers if q in w.full_name.lower()}
    room_ids = {r.id for _, r in _rooms(floors) if any(s.worker_id in worker_ids for s in current_stays(r))}
    return worker_ids, room_ids


def totals(floors: Sequence[FloorOut]) -> Tuple[int, int]:
    total_rooms = sum(len(f.rooms) for f in floors)
    total_current = sum(len(current_stays(r)) for _, r in _rooms(floors))
    return total_rooms, total_current


def worker_stays(worker_id: str, floors: Sequence[FloorOut]) -> List[dict]:
    rows = [
        {"stay": s, "floor_name": f.name, "room_code": r.code}
        for f, r in _rooms(floors)
        for s in r.stays
        if s.worker_id == worker_id
    ]
    rows.sort(key=lambda x: x["stay"].date_in, reverse=True)
    return rows
