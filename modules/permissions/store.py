"""Grant store adapters keyed by ``(scope, scope_id, user_id)``."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from shared.config import get_grants_backend
from shared.permissions.capabilities import normalize_scope
from shared.permissions.grants import GrantRecord, ScopeUser

__all__ = ["GrantStore", "MemoryGrantStore", "build_grant_store"]

log = logging.getLogger("hq.permissions.store")

_Key = Tuple[str, str, str]


class GrantStore(Protocol):
    async def get_grant(self, scope: str, scope_id: str, user_id: str) -> Optional[GrantRecord]: ...

    async def put_grant(
        self, scope: str, scope_id: str, user_id: str, fine_grained: Mapping[str, object]
    ) -> GrantRecord: ...

    async def delete_grant(self, scope: str, scope_id: str, user_id: str) -> bool: ...

    async def list_users_in_scope(self, scope: str, scope_id: str) -> List[ScopeUser]: ...

    async def list_grants(self, scope: str, scope_id: str) -> List[GrantRecord]: ...


class MemoryGrantStore:
    """Process-local grant store for tests and development runs."""

    def __init__(
        self,
        records: Iterable[GrantRecord] = (),
        *,
        members: Mapping[Tuple[str, str], Iterable[ScopeUser]] | None = None,
    ) -> None:
        self._records: Dict[_Key, GrantRecord] = {}
        for record in records:
            self._records[(record.scope, record.scope_id, record.user_id)] = record
        self._members: Dict[Tuple[str, str], List[ScopeUser]] = {
            (normalize_scope(scope), str(scope_id)): list(users)
            for (scope, scope_id), users in (members or {}).items()
        }

    @staticmethod
    def _key(scope: str, scope_id: str, user_id: str) -> _Key:
        return (normalize_scope(scope), str(scope_id).strip(), str(user_id).strip())

    async def get_grant(self, scope: str, scope_id: str, user_id: str) -> Optional[GrantRecord]:
        return self._records.get(self._key(scope, scope_id, user_id))

    async def put_grant(
        self, scope: str, scope_id: str, user_id: str, fine_grained: Mapping[str, object]
    ) -> GrantRecord:
        record = GrantRecord.build(scope, scope_id, user_id, fine_grained)
        self._records[(record.scope, record.scope_id, record.user_id)] = record
        log.debug("grant stored", extra={"scope": record.scope, "scope_id": record.scope_id, "user_id": record.user_id})
        return record

    async def delete_grant(self, scope: str, scope_id: str, user_id: str) -> bool:
        return self._records.pop(self._key(scope, scope_id, user_id), None) is not None

    async def list_grants(self, scope: str, scope_id: str) -> List[GrantRecord]:
        resolved = normalize_scope(scope)
        return [
            record
            for (rec_scope, rec_scope_id, _), record in sorted(self._records.items())
            if rec_scope == resolved and rec_scope_id == scope_id
        ]

    async def list_users_in_scope(self, scope: str, scope_id: str) -> List[ScopeUser]:
        resolved = normalize_scope(scope)
        users = list(self._members.get((resolved, scope_id), []))
        known = {user.user_id for user in users}
        for record in await self.list_grants(resolved, scope_id):
            if record.user_id not in known:
                users.append(ScopeUser(user_id=record.user_id, display_name=record.user_id))
                known.add(record.user_id)
        return users


def build_grant_store(backend: str | None = None) -> GrantStore:
    """Return the grant store selected by ``GRANTS_BACKEND``."""

    choice = (backend or get_grants_backend()).strip().lower()
    if choice == "sheets":
        from shared.sheets.grants import SheetsGrantStore

        return SheetsGrantStore()
    if choice != "memory":
        log.warning("unknown grants backend; using memory", extra={"backend": choice})
    return MemoryGrantStore()
