"""Tables backing the opening-hours document and reservations."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class OpeningHoursDocument(Base):
    """Singleton configuration document (id = "main"), stored as JSON text."""

    __tablename__ = "opening_hours"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default="main")
    document: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class Reservation(Base):
    """
    A reservation row.

    Only operational fields are plaintext; contact data, notes and the
    rejection reason live in ``enc``.
    """

    __tablename__ = "reservation"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    date: Mapped[str] = mapped_column(String(10), nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    area: Mapped[str] = mapped_column(String(16), nullable=False)
    people: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    enc: Mapped[str] = mapped_column(Text, nullable=False)
    email_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    date_index: Mapped[str] = mapped_column(String(10), nullable=False)
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ua_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_reservation_slot_status", "date", "area", "time", "status"),
        Index("ix_reservation_email_hash", "email_hash"),
        Index("ix_reservation_date_index", "date_index"),
        Index("ix_reservation_user_id", "user_id"),
        CheckConstraint("people BETWEEN 1 AND 100", name="ck_reservation_people"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'completed', 'cancelled')",
            name="ck_reservation_status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, date={self.date}, time={self.time}, "
            f"area={self.area}, people={self.people}, status='{self.status}')>"
        )
