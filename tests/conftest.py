from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  (registers tables)
from database import Base, get_db
from occupancy import DormService

TODAY = date(2026, 3, 15)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)()
    yield session
    session.close()


@pytest.fixture
def svc(db):
    return DormService(db, clock=lambda: TODAY).load()


@pytest.fixture
def dorm(svc):
    """Two floors of three rooms (101..106) and three workers."""
    assert svc.initialize_structure(2, 3, 101).ok
    ids = {}
    for name, recruiter in [("Nguyễn Văn An", "Hùng"), ("Trần Thị Bình", "Hùng"), ("Lê Văn Cường", "")]:
        res = svc.create_worker({"full_name": name, "recruiter": recruiter, "hometown": "Nghệ An"})
        ids[name] = res.value
    return svc, ids


def room_id(svc, code):
    return next(r.id for f in svc.state.floors for r in f.rooms if r.code == code)


@pytest.fixture
def client(db, monkeypatch):
    from app import app, get_auth
    from auth import AdminAuth

    monkeypatch.setattr("config.ADMIN_EMAIL", "admin@ktx.local")
    monkeypatch.setattr("config.ADMIN_PASSWORD", None)

    admin_auth = AdminAuth()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_auth] = lambda: admin_auth
    yield TestClient(app)
    app.dependency_overrides.clear()
