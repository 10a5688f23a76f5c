# models.py
from sqlalchemy import Column, Integer, String, Date, ForeignKey, JSON
from sqlalchemy.orm import relationship
from database import Base
from utils import new_id


class Floor(Base):
    __tablename__ = "floors"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    sort = Column(Integer, nullable=False, default=0, index=True)

    rooms = relationship("Room", back_populates="floor_rel", cascade="all,delete-orphan")


class Room(Base):
    __tablename__ = "rooms"
    id = Column(String(36), primary_key=True, default=new_id)
    floor_id = Column(String(36), ForeignKey("floors.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(100), nullable=False)  # not unique, duplicates are allowed
    sort = Column(Integer, nullable=False, default=0, index=True)

    floor_rel = relationship("Floor", back_populates="rooms")
    stays = relationship("Stay", back_populates="room_rel", cascade="all,delete-orphan")


class Worker(Base):
    __tablename__ = "workers"
    id = Column(String(36), primary_key=True, default=new_id)
    full_name = Column(String(300), nullable=False, index=True)
    dob = Column(Date, nullable=True)
    phone = Column(String(50), nullable=True)
    hometown = Column(String(300), nullable=True)
    recruiter = Column(String(300), nullable=True)


class Stay(Base):
    __tablename__ = "stays"
    id = Column(String(36), primary_key=True, default=new_id)
    room_id = Column(String(36), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    worker_id = Column(String(36), ForeignKey("workers.id", ondelete="RESTRICT"), nullable=False, index=True)
    date_in = Column(Date, nullable=False, index=True)
    date_out = Column(Date, nullable=True)  # null while the stay is current

    room_rel = relationship("Room", back_populates="stays")


class AppSettings(Base):
    __tablename__ = "app_settings"
    id = Column(Integer, primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
