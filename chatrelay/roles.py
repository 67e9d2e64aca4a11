"""Role catalog: process-wide, ordered, persisted on every mutation."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from chatrelay.callback import MAX_ROLE_NAME_BYTES
from chatrelay.storage import RoleStore, RoleStoreError

logger = logging.getLogger(__name__)


class RoleNameError(ValueError):
    """Raised when a proposed role name breaks the naming rules."""


@dataclass(frozen=True)
class Role:
    name: str
    persona_text: str


def validate_role_name(name: str) -> str:
    """Return the stripped name, or raise RoleNameError explaining the problem.

    Names become callback payloads, so they must be a single token with no
    colon (``name:persona`` syntax) and short enough for a keyboard button.
    A leading ``/`` is refused so a role never looks like a command.
    """
    name = name.strip()
    if not name:
        raise RoleNameError("Role name cannot be empty.")
    if any(ch.isspace() for ch in name):
        raise RoleNameError("Role name cannot contain spaces.")
    if ":" in name:
        raise RoleNameError("Role name cannot contain ':'.")
    if name.startswith("/"):
        raise RoleNameError("Role name cannot start with '/'.")
    if len(name.encode("utf-8")) > MAX_ROLE_NAME_BYTES:
        raise RoleNameError(f"Role name is too long (max {MAX_ROLE_NAME_BYTES} bytes).")
    return name


class RoleCatalog:
    """Insertion-ordered role name -> Role mapping shared by all chats.

    Every mutation writes the full catalog to the store while holding the
    catalog lock. If the write fails the in-memory change is rolled back
    and the RoleStoreError propagates, so memory never gets ahead of disk.
    """

    def __init__(self, store: RoleStore, roles: dict[str, str] | None = None) -> None:
        self.store = store
        self._roles: dict[str, Role] = {
            name: Role(name, text) for name, text in (roles or {}).items()
        }
        self.lock = asyncio.Lock()

    @classmethod
    async def load(cls, store: RoleStore) -> RoleCatalog:
        """Build a catalog from the store's current contents."""
        return cls(store, await store.load())

    async def get(self, name: str) -> Role | None:
        async with self.lock:
            return self._roles.get(name)

    async def roles(self) -> list[Role]:
        """All roles in insertion order."""
        async with self.lock:
            return list(self._roles.values())

    async def default(self) -> Role | None:
        """The first-inserted role, used to seed new sessions."""
        async with self.lock:
            return next(iter(self._roles.values()), None)

    async def put(self, name: str, persona_text: str) -> Role:
        """Insert or replace a role and persist the catalog.

        A replaced role keeps its position in the listing.

        Raises:
            RoleNameError: if *name* is not a valid role name.
            RoleStoreError: if persisting fails (memory is rolled back).
        """
        name = validate_role_name(name)
        role = Role(name, persona_text)
        async with self.lock:
            previous = dict(self._roles)
            self._roles[name] = role
            await self._persist(previous)
            logger.info("Role '%s' saved (%d total)", name, len(self._roles))
        return role

    async def remove(self, name: str) -> Role | None:
        """Remove a role and persist. Returns the removed role, or None if absent.

        Raises:
            RoleStoreError: if persisting fails (memory is rolled back).
        """
        async with self.lock:
            if name not in self._roles:
                return None
            previous = dict(self._roles)
            removed = self._roles.pop(name)
            await self._persist(previous)
            logger.info("Role '%s' deleted (%d left)", name, len(self._roles))
        return removed

    async def _persist(self, previous: dict[str, Role]) -> None:
        # Caller holds self.lock
        try:
            await self.store.save({name: r.persona_text for name, r in self._roles.items()})
        except Exception as e:
            self._roles = previous
            logger.error("Failed to persist role catalog, change rolled back", exc_info=True)
            if isinstance(e, RoleStoreError):
                raise
            raise RoleStoreError(f"Cannot save roles: {e}") from e
