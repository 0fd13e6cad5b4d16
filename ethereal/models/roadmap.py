"""Roadmap table backing the ``roadmap`` collection."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from ethereal.core.database import Base


def _new_uid() -> str:
    return uuid.uuid4().hex


class RoadmapRecord(Base):
    __tablename__ = "roadmap"

    uid: Mapped[str] = mapped_column(String, primary_key=True, default=_new_uid)
    subject_name: Mapped[str] = mapped_column(String)
    # Topics in their stored single-key form: [{"Topic": [subtopic, ...]}, ...]
    roadmap_data: Mapped[list[dict[str, object]]] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
