"""SQLAlchemy database models."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from schoolmeal.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class SchoolInfo(Base):
    """Registered school whose meals are ingested by the batch job."""

    __tablename__ = "school_infos"

    school_code: Mapped[str] = mapped_column(String(20), primary_key=True)
    office_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    school_name: Mapped[str | None] = mapped_column(String, nullable=True)
    region: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class MealMenu(Base):
    """Canonical meal record for one (school, date, meal slot)."""

    __tablename__ = "meal_menus"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    school_code: Mapped[str] = mapped_column(String(20), nullable=False)
    office_code: Mapped[str] = mapped_column(String(10), nullable=False)
    meal_date: Mapped[date] = mapped_column(Date, nullable=False)
    meal_slot: Mapped[str] = mapped_column(String(10), nullable=False)  # 조식, 중식, 석식
    menu_items: Mapped[list] = mapped_column(JSON, default=list)
    kcal: Mapped[str] = mapped_column(String(50), nullable=False)
    origin_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    nutrition_info: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fetch_status: Mapped[str] = mapped_column(String(20), nullable=False)  # ok, empty, error
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "school_code", "meal_date", "meal_slot", name="uq_meal_menus_school_date_slot"
        ),
        Index("idx_meal_menus_meal_date", "meal_date"),
    )


# Tables owned by dependent subsystems. Only the foreign key matters here:
# a meal referenced by any of them must keep its id.


class MealImage(Base):
    """Photo uploaded for a meal."""

    __tablename__ = "meal_images"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    meal_id: Mapped[str] = mapped_column(String(36), ForeignKey("meal_menus.id"), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (Index("idx_meal_images_meal_id", "meal_id"),)


class MealRating(Base):
    """User rating of a meal."""

    __tablename__ = "meal_ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meal_id: Mapped[str] = mapped_column(String(36), ForeignKey("meal_menus.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (Index("idx_meal_ratings_meal_id", "meal_id"),)


class MealQuiz(Base):
    """Quiz generated from a meal."""

    __tablename__ = "meal_quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meal_id: Mapped[str] = mapped_column(String(36), ForeignKey("meal_menus.id"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (Index("idx_meal_quizzes_meal_id", "meal_id"),)


DEPENDENT_MODELS: tuple[type[Base], ...] = (MealImage, MealRating, MealQuiz)


class IngestionRun(Base):
    """Track batch ingestion runs."""

    __tablename__ = "ingestion_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    meal_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # running, completed, partial, failed
    task_id: Mapped[str | None] = mapped_column(String(100), nullable=True)  # Celery task ID
    trigger_type: Mapped[str] = mapped_column(
        String(50), default="scheduled"
    )  # scheduled, manual, retry
    schools_total: Mapped[int] = mapped_column(Integer, default=0)
    schools_completed: Mapped[int] = mapped_column(Integer, default=0)
    schools_empty: Mapped[int] = mapped_column(Integer, default=0)
    schools_failed: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_ingestion_runs_meal_date", "meal_date"),
        Index("idx_ingestion_runs_status", "status"),
    )
