import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Integer, Text, JSON, Uuid
from app.db.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"


class Medicine(Base):
    __tablename__ = "medicines"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    dosage = Column(String(64), nullable=False)  # e.g. "1-0-1"
    timing = Column(String(16), nullable=False, default="any")  # 'before-food' | 'after-food' | 'any'
    purpose = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=True)
    # List of "HH:MM" 24h strings
    schedule = Column(JSON, nullable=False, default=list)
    duration = Column(Integer, nullable=False, default=0)  # days
    quantity = Column(Integer, nullable=False, default=0)
    photo_url = Column(String(1024), nullable=True)
    status = Column(String(16), nullable=False, default="active")  # 'active' | 'completed'
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Medicine id={self.id} name={self.name} schedule={self.schedule}>"


class IntakeRecord(Base):
    """One taken/missed event in a user's history.

    History is owned by the user, not the medicine: deleting a medicine keeps
    its past intake records (medicine_name is denormalized for that reason).
    """
    __tablename__ = "intake_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    medicine_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    medicine_name = Column(String(255), nullable=False)
    scheduled_at = Column(String(5), nullable=False)  # "HH:MM"
    status = Column(String(16), nullable=False)  # 'taken' | 'missed'
    taken_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    points = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:  # pragma: no cover (repr tested indirectly)
        return f"<IntakeRecord user={self.user_id} medicine={self.medicine_name} status={self.status}>"


class UserStats(Base):
    __tablename__ = "user_stats"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    points = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)
