"""
Session registry: owns every session record, hands out ids and applies each
mutating call all-or-nothing.

The host runtime is modelled as a key-value store of JSON compatible records
plus a clock. A call loads a private working copy of the record, mutates it,
and the copy is written back only when the call completes without raising.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Protocol

from .exceptions import DuplicateSessionError, SessionNotFoundError, ValidationError
from .session import Session, SessionView

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def get(self, session_id: int) -> Optional[dict]:
        ...

    def put(self, session_id: int, record: dict) -> None:
        ...

    def __contains__(self, session_id: int) -> bool:
        ...

    def ids(self) -> List[int]:
        ...


class MemorySessionStore:
    def __init__(self):
        self._records: Dict[int, dict] = {}

    def get(self, session_id: int) -> Optional[dict]:
        return self._records.get(session_id)

    def put(self, session_id: int, record: dict) -> None:
        self._records[session_id] = record

    def __contains__(self, session_id: int) -> bool:
        return session_id in self._records

    def ids(self) -> List[int]:
        return list(self._records)


class SessionRegistry:
    def __init__(self, store: Optional[SessionStore] = None, clock: Callable[[], float] = time.time):
        self.store = store if store is not None else MemorySessionStore()
        self.clock = clock
        self.lock = threading.RLock()
        self._next_id = 1

    def now(self) -> float:
        return self.clock()

    def allocate_id(self, requested: Optional[int] = None) -> int:
        """
        Use the caller supplied id when given, otherwise the lowest unused
        counter value. Ids are unique across DKG and signing sessions.
        """
        with self.lock:
            if requested is not None:
                if isinstance(requested, bool) or not isinstance(requested, int) or requested < 1:
                    raise ValidationError(f"session id must be a positive integer, got {requested!r}")
                if requested in self.store:
                    raise DuplicateSessionError(f"session {requested} already exists", requested)
                return requested
            while self._next_id in self.store:
                self._next_id += 1
            return self._next_id

    def create(self, session: Session) -> Session:
        with self.lock:
            if session.session_id in self.store:
                raise DuplicateSessionError(f"session {session.session_id} already exists", session.session_id)
            self.store.put(session.session_id, session.to_dict())
        logger.info("created %s session %s with %d participants, t=%d",
                    session.purpose.value, session.session_id, session.n, session.threshold)
        return session

    def load(self, session_id: int) -> Session:
        record = self.store.get(session_id)
        if record is None:
            raise SessionNotFoundError(f"unknown session {session_id}", session_id)
        return Session.from_dict(record)

    @contextmanager
    def mutate(self, session_id: int) -> Iterator[Session]:
        with self.lock:
            session = self.load(session_id)
            yield session
            self.store.put(session_id, session.to_dict())

    def get_session(self, session_id: int) -> SessionView:
        return self.load(session_id).view(self.now())

    def ids(self) -> List[int]:
        return sorted(self.store.ids())
