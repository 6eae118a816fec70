from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class User(Base):
    """Auth identity mirrored from Supabase; only id and email are used here."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)  # Supabase auth user id
    email = Column(String, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
