# MIT License
# Copyright (c) 2025 Hashborn

"""
Capability checks composed into pools and factories.

- AccessControl: role predicate (who may fund, who may deploy)
- CallGuard: per-instance lock + reentrancy flag + rollback of state on failure.
  Views of the owner take the same lock, so other threads never read a
  half-applied or later rolled back state.
"""
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple
import threading
import logging

from protocol.types.common import Role, Unauthorized, ReentrantCall

logger = logging.getLogger(__name__)


class AccessControl:
    def __init__(self, grants: Optional[Dict[Role, Iterable[str]]] = None):
        self._roles: Dict[Role, Set[str]] = {}
        for role, members in (grants or {}).items():
            for member in members:
                self.grant(role, member)

    def grant(self, role: Role, address: str) -> None:
        self._roles.setdefault(role, set()).add(address)

    def revoke(self, role: Role, address: str) -> None:
        self._roles.get(role, set()).discard(address)

    def has_role(self, role: Role, address: str) -> bool:
        return address in self._roles.get(role, set())

    def require(self, role: Role, address: str) -> None:
        if not self.has_role(role, address):
            raise Unauthorized(f"{address} lacks role {role.value}")


class CallGuard:
    """
    Makes each public entry point of its owner an indivisible unit.

    Inside `transaction()` the owner's state is copied first and restored if
    anything raises. A second entry while a transaction is open (same thread,
    e.g. from a ledger hook) fails with ReentrantCall; other threads wait on
    the lock.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.RLock()
        self._entered = False
        self._events: List[Tuple[Callable[..., None], Dict[str, Any]]] = []

    @property
    def entered(self) -> bool:
        return self._entered

    @property
    def lock(self):
        """Held for a whole transaction; readers take it to see committed state only."""
        return self._lock

    @contextmanager
    def transaction(self, get_state: Callable[[], Any], set_state: Callable[[Any], None]):
        with self._lock:
            if self._entered:
                raise ReentrantCall(f"Re-entrant call into {self.name}")
            self._entered = True
            saved = get_state().model_copy(deep=True)
            self._events = []
            try:
                yield
            except BaseException:
                set_state(saved)
                self._events = []
                raise
            finally:
                self._entered = False

            events, self._events = self._events, []
        # Publish only what committed
        for emit, data in events:
            emit(**data)

    def defer(self, emit: Callable[..., None], **data: Any) -> None:
        """Queue an event until the open transaction commits."""
        if not self._entered:
            emit(**data)
            return
        self._events.append((emit, data))
