from __future__ import annotations

import copy
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Hashable, Iterator

from sqlalchemy.orm import Session

from app.fsm.states import ConversationState
from app.models.conversation import Conversation

logger = logging.getLogger(__name__)

_TOUCHED_AT_KEY = "_touched_at"


class ConversationStore(ABC):
    """Estado de conversación por (tenant, cliente)."""

    @abstractmethod
    def get(self, tenant_id: int, customer_id: str) -> ConversationState | None:
        ...

    @abstractmethod
    def set(self, tenant_id: int, customer_id: str, state: ConversationState) -> None:
        ...

    @abstractmethod
    def delete(self, tenant_id: int, customer_id: str) -> None:
        ...


class InMemoryConversationStore(ConversationStore):
    """Mapa en memoria con vencimiento por inactividad.

    Las entradas vencidas se descartan al leerlas o con ``purge_expired``.
    Sólo sirve para una instancia; con varias réplicas usar la versión SQL.
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[int, str], tuple[dict, float]] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: int, customer_id: str) -> ConversationState | None:
        key = (tenant_id, customer_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            data, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                logger.info("conversation expired", extra={"tenant_id": tenant_id, "customer_id": customer_id})
                return None
            return ConversationState.from_dict(copy.deepcopy(data))

    def set(self, tenant_id: int, customer_id: str, state: ConversationState) -> None:
        with self._lock:
            self._entries[(tenant_id, customer_id)] = (state.to_dict(), self._clock() + self._ttl_seconds)

    def delete(self, tenant_id: int, customer_id: str) -> None:
        with self._lock:
            self._entries.pop((tenant_id, customer_id), None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SqlConversationStore(ConversationStore):
    """Persiste el estado en la tabla conversations; compartido entre réplicas."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def _find(self, db: Session, tenant_id: int, customer_id: str) -> Conversation | None:
        return (
            db.query(Conversation)
            .filter(Conversation.tenant_id == tenant_id, Conversation.customer_id == customer_id)
            .first()
        )

    def get(self, tenant_id: int, customer_id: str) -> ConversationState | None:
        db = self._session_factory()
        try:
            row = self._find(db, tenant_id, customer_id)
            if row is None:
                return None
            data = dict(row.data or {})
            touched_at = float(data.pop(_TOUCHED_AT_KEY, 0) or 0)
            if touched_at + self._ttl_seconds <= self._clock():
                db.delete(row)
                db.commit()
                logger.info("conversation expired", extra={"tenant_id": tenant_id, "customer_id": customer_id})
                return None
            return ConversationState.from_dict(data)
        finally:
            db.close()

    def set(self, tenant_id: int, customer_id: str, state: ConversationState) -> None:
        data = state.to_dict()
        data[_TOUCHED_AT_KEY] = self._clock()
        db = self._session_factory()
        try:
            row = self._find(db, tenant_id, customer_id)
            if row is None:
                row = Conversation(tenant_id=tenant_id, customer_id=customer_id)
                db.add(row)
            row.step = state.step.value
            row.data = data
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, tenant_id: int, customer_id: str) -> None:
        db = self._session_factory()
        try:
            db.query(Conversation).filter(
                Conversation.tenant_id == tenant_id,
                Conversation.customer_id == customer_id,
            ).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class KeyedLocks:
    """Un mutex por clave; se libera la entrada cuando nadie la usa."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
