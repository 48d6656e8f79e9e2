"""SQL archive of completed rounds.

Rounds are stored as JSON documents next to their number, so the schema does
not need to follow every field of RoundRecord.
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Text, create_engine, delete, func, select
from sqlalchemy.orm import declarative_base, sessionmaker

from quipslop.models import RoundRecord
from quipslop.snapshot import round_from_dict, round_to_dict

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoundRow(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    num = Column(Integer, nullable=False, index=True)
    data = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class RoundStore:
    """archive / list_rounds / clear_all over any SQLAlchemy database URL."""

    def __init__(self, database_url: str) -> None:
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self._engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
        Base.metadata.create_all(bind=self._engine)
        self._session_factory = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)
        logger.info("Round store ready at %s", self._engine.url.render_as_string(hide_password=True))

    def archive(self, rnd: RoundRecord) -> None:
        payload = json.dumps(round_to_dict(rnd), ensure_ascii=False)
        with self._session_factory() as session, session.begin():
            session.add(RoundRow(num=rnd.number, data=payload))
        logger.info("Archived round %d", rnd.number)

    def list_rounds(self, page: int = 1, page_size: int = 10) -> tuple[list[RoundRecord], int]:
        """Newest first. Returns (records on this page, total archived rounds)."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(RoundRow)) or 0
            rows = session.scalars(
                select(RoundRow)
                .order_by(RoundRow.num.desc(), RoundRow.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).all()
        return [round_from_dict(json.loads(row.data)) for row in rows], total

    def latest_round_number(self) -> int | None:
        with self._session_factory() as session:
            return session.scalar(select(func.max(RoundRow.num)))

    def clear_all(self) -> None:
        with self._session_factory() as session, session.begin():
            session.execute(delete(RoundRow))
        logger.info("Round archive cleared")

    def close(self) -> None:
        self._engine.dispose()
