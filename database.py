"""
Local persistence - SQLite with SQLAlchemy

Holds string-keyed storage slots. The only slot in use is the visited-farm
list, stored as one serialized JSON array and overwritten wholesale.
"""
import json
import logging
import os
from datetime import datetime

from sqlalchemy import create_engine, Column, String, Text, DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()

VISITED_KEY = "visitedFarms"


class StorageSlot(Base):
    __tablename__ = "storage_slots"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def _db_url() -> str:
    return os.getenv("TERREFVG_DB_URL", "sqlite:///./terrefvg.db")


def init_db(url=None):
    """Create the engine and make sure the tables exist."""
    url = url or _db_url()
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args)
    Base.metadata.create_all(bind=engine)
    return engine


def read_slot(engine, key):
    Session = sessionmaker(bind=engine)
    with Session() as db:
        slot = db.get(StorageSlot, key)
        return slot.value if slot else None


def write_slot(engine, key, value):
    """Replace the slot's value in a single transaction."""
    Session = sessionmaker(bind=engine)
    with Session.begin() as db:
        db.merge(StorageSlot(key=key, value=value, updated_at=datetime.utcnow()))


class VisitedStore:
    """Visited-farm ids (check-ins), persisted across sessions.

    The list is read once on construction. Each check-in persists the whole
    updated array before the in-memory list changes, so an interrupted write
    never leaves a partial set behind.
    """

    def __init__(self, engine=None, key=VISITED_KEY):
        self.engine = engine if engine is not None else init_db()
        self.key = key
        self._visited = self.load()

    def load(self) -> list[str]:
        """Read the persisted ids; empty when the slot is absent or unreadable."""
        try:
            raw = read_slot(self.engine, self.key)
        except SQLAlchemyError as exc:
            logger.warning("Could not read visited farms: %s", exc)
            return []
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed visited-farms slot: %r", raw[:80])
            return []
        if not isinstance(parsed, list):
            logger.warning("Ignoring visited-farms slot that is not a list")
            return []
        ids = []
        for farm_id in parsed:
            if isinstance(farm_id, str) and farm_id not in ids:
                ids.append(farm_id)
        return ids

    @property
    def visited(self) -> list[str]:
        return list(self._visited)

    def has_visited(self, farm_id) -> bool:
        return farm_id in self._visited

    def __len__(self):
        return len(self._visited)

    def check_in(self, farm_id) -> bool:
        """Record a visit. Returns False when already visited or not persisted."""
        if not farm_id or farm_id in self._visited:
            return False
        updated = self._visited + [farm_id]
        try:
            write_slot(self.engine, self.key, json.dumps(updated))
        except SQLAlchemyError as exc:
            logger.warning("Could not persist check-in for %s: %s", farm_id, exc)
            return False
        self._visited = updated
        return True
