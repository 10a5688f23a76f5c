# ------------------------------------------------------------
# app.py: FastAPI backend for the KTX dormitory dashboard
# ------------------------------------------------------------
from contextlib import asynccontextmanager
from io import BytesIO
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

import config
from auth import AdminAuth
from database import get_db, init_db
from logging_config import setup_logging
from occupancy import DormService
import views
from schemas import (
    CheckInIn,
    CheckOutIn,
    FloorIn,
    InitStructureIn,
    OpResult,
    RoomIn,
    RoomRename,
    Settings,
    SignInIn,
    WorkerIn,
    WorkerPatch,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(title="KTX Dormitory Occupancy API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins (adjust for production)
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_BY_KIND = {"validation": 400, "auth": 401, "not_found": 404, "conflict": 409, "store": 502}
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ----- Dependencies -----
_admin_auth = AdminAuth()


def get_auth() -> AdminAuth:
    return _admin_auth


def get_service(db: Session = Depends(get_db)) -> DormService:
    return DormService(db).load()


def require_admin(x_admin_token: Optional[str] = Header(None), auth: AdminAuth = Depends(get_auth)):
    if not auth.check_token(x_admin_token):
        raise HTTPException(403, "Admin sign-in required.")


def _reply(svc: DormService, result: OpResult):
    if not result.ok:
        detail = {"reason": result.reason, "step": result.step, "value": result.value}
        raise HTTPException(STATUS_BY_KIND.get(result.kind, 500), detail)
    return {"value": result.value, "state": svc.state, "selected_floor_id": svc.selected_floor_id}


# ----- Routes -----
@app.get("/")
def root():
    return {"message": "KTX Dormitory Occupancy API is running"}


@app.get("/state")
def get_state(svc: DormService = Depends(get_service), auth: AdminAuth = Depends(get_auth)):
    return {"state": svc.state, "selected_floor_id": svc.selected_floor_id, "is_admin": auth.current_session()}


@app.get("/stats")
def get_stats(svc: DormService = Depends(get_service)):
    return svc.stats()


@app.get("/search")
def search(q: str = "", svc: DormService = Depends(get_service)):
    return svc.search(q)


@app.get("/rooms/{room_id}/stays")
def room_stays(room_id: str, svc: DormService = Depends(get_service)):
    for f in svc.state.floors:
        for r in f.rooms:
            if r.id == room_id:
                return {"current": views.current_stays(r), "history": views.history_stays(r)}
    raise HTTPException(404, "Room not found.")


@app.get("/workers/{worker_id}/stays")
def worker_stays(worker_id: str, svc: DormService = Depends(get_service)):
    return views.worker_stays(worker_id, svc.state.floors)


# Auth
@app.get("/auth/session")
def session(auth: AdminAuth = Depends(get_auth)):
    return {"is_admin": auth.current_session()}


@app.post("/auth/sign-in")
def sign_in(payload: SignInIn, svc: DormService = Depends(get_service), auth: AdminAuth = Depends(get_auth)):
    result = auth.sign_in(payload.email, payload.password, svc.settings.adminPassword)
    if not result.ok:
        raise HTTPException(401, result.reason)
    return {"token": result.value}


@app.post("/auth/sign-out")
def sign_out(auth: AdminAuth = Depends(get_auth)):
    auth.sign_out()
    return {"is_admin": False}


# Settings
@app.get("/settings")
def get_settings(svc: DormService = Depends(get_service)):
    return svc.settings


@app.put("/settings", dependencies=[Depends(require_admin)])
def put_settings(payload: Settings, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.save_settings(payload))


# Floors & rooms
@app.post("/floors", dependencies=[Depends(require_admin)])
def add_floor(payload: FloorIn, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.create_floor(payload.name))


@app.delete("/floors/{floor_id}", dependencies=[Depends(require_admin)])
def remove_floor(floor_id: str, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.delete_floor(floor_id))


@app.post("/floors/{floor_id}/rooms", dependencies=[Depends(require_admin)])
def add_room(floor_id: str, payload: RoomIn, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.create_room(floor_id, payload.code))


@app.patch("/floors/{floor_id}/rooms/{room_id}", dependencies=[Depends(require_admin)])
def rename_room(floor_id: str, room_id: str, payload: RoomRename, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.rename_room(floor_id, room_id, payload.code))


@app.delete("/floors/{floor_id}/rooms/{room_id}", dependencies=[Depends(require_admin)])
def remove_room(floor_id: str, room_id: str, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.delete_room(floor_id, room_id))


# Workers
@app.post("/workers", dependencies=[Depends(require_admin)])
def add_worker(payload: WorkerIn, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.create_worker(payload))


@app.patch("/workers/{worker_id}", dependencies=[Depends(require_admin)])
def edit_worker(worker_id: str, payload: WorkerPatch, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.update_worker(worker_id, payload))


@app.delete("/workers/{worker_id}", dependencies=[Depends(require_admin)])
def remove_worker(worker_id: str, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.delete_worker(worker_id))


# Stays
@app.post("/stays", dependencies=[Depends(require_admin)])
def check_in(payload: CheckInIn, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.check_in(payload.room_id, payload.worker_id, payload.date_in))


@app.patch("/stays/{stay_id}", dependencies=[Depends(require_admin)])
def check_out(stay_id: str, payload: CheckOutIn, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.check_out(stay_id, payload.date_out))


# Bulk
@app.post("/initialize", dependencies=[Depends(require_admin)])
def initialize(payload: InitStructureIn, svc: DormService = Depends(get_service)):
    return _reply(svc, svc.initialize_structure(payload.floor_count, payload.rooms_per_floor, payload.start_code))


@app.post("/reset", dependencies=[Depends(require_admin)])
def reset(svc: DormService = Depends(get_service)):
    return _reply(svc, svc.reset_all())


@app.post("/import", dependencies=[Depends(require_admin)])
def import_excel(file: UploadFile = File(...), svc: DormService = Depends(get_service)):
    return _reply(svc, svc.import_workbook(BytesIO(file.file.read())))


@app.get("/export")
def export_excel(svc: DormService = Depends(get_service)):
    filename, content = svc.export_workbook()
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
