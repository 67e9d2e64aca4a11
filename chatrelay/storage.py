"""Role store: load/save the role catalog as a whole.

Implementations:
- YamlRoleStore (file on disk, the default)
- InMemoryRoleStore (console mode without persistence, tests)

The YAML layout keeps one mapping per role so more fields can be added
later without breaking existing files::

    Tutor:
      system: You are a patient math tutor.
"""
from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml

logger = logging.getLogger(__name__)

RoleMap = dict[str, str]  # role name -> persona text


class RoleStoreError(RuntimeError):
    """Raised when the role store cannot be read or written."""


@runtime_checkable
class RoleStore(Protocol):
    """Persistence for the role catalog. ``save`` always overwrites everything."""

    async def load(self) -> RoleMap:
        """Return the stored catalog. Raises RoleStoreError if unreadable."""
        ...

    async def save(self, roles: RoleMap) -> None:
        """Replace the stored catalog. Raises RoleStoreError on failure."""
        ...


def _parse_roles(data: object, source: str) -> RoleMap:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RoleStoreError(f"{source}: expected a mapping of role names, got {type(data).__name__}")

    roles: RoleMap = {}
    for name, entry in data.items():
        # Older files stored the persona text directly under the name
        if isinstance(entry, str):
            roles[str(name)] = entry
        elif isinstance(entry, dict) and isinstance(entry.get("system"), str):
            roles[str(name)] = entry["system"]
        else:
            raise RoleStoreError(f"{source}: role '{name}' has no 'system' text")
    return roles


class YamlRoleStore:
    """Role catalog stored in a single YAML file.

    Args:
        path: File location. A missing file is an empty catalog.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> RoleMap:
        if not self.path.is_file():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise RoleStoreError(f"Cannot read roles from {self.path}: {e}") from e
        return _parse_roles(data, str(self.path))

    def _write(self, roles: RoleMap) -> None:
        document = {name: {"system": text} for name, text in roles.items()}
        text = yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file, then swap it in
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".roles-", suffix=".yaml")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise RoleStoreError(f"Cannot write roles to {self.path}: {e}") from e

    async def load(self) -> RoleMap:
        roles = await asyncio.to_thread(self._read)
        logger.debug("Loaded %d role(s) from %s", len(roles), self.path)
        return roles

    async def save(self, roles: RoleMap) -> None:
        await asyncio.to_thread(self._write, dict(roles))
        logger.debug("Saved %d role(s) to %s", len(roles), self.path)


class InMemoryRoleStore:
    """Role store that keeps the catalog in process memory only."""

    def __init__(self, roles: RoleMap | None = None) -> None:
        self._roles: RoleMap = dict(roles or {})

    async def load(self) -> RoleMap:
        return dict(self._roles)

    async def save(self, roles: RoleMap) -> None:
        self._roles = dict(roles)
