import asyncio

import pytest

from modules.permissions.editor import GrantEditor, export_grants, import_grants
from modules.permissions.store import MemoryGrantStore, build_grant_store
from shared.errors import MalformedImport, StoreUnavailable
from shared.permissions.grants import GrantRecord, ScopeUser


class _FailingStore(MemoryGrantStore):
    def __init__(self, *args, fail_on=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on = set(fail_on)
        self.puts = 0

    async def put_grant(self, scope, scope_id, user_id, fine_grained):
        if "put" in self.fail_on:
            raise StoreUnavailable("put grant", "quota exceeded")
        self.puts += 1
        return await super().put_grant(scope, scope_id, user_id, fine_grained)

    async def delete_grant(self, scope, scope_id, user_id):
        if "delete" in self.fail_on:
            raise StoreUnavailable("delete grant", "timeout")
        return await super().delete_grant(scope, scope_id, user_id)


def test_open_toggle_save_round_trip():
    async def _run():
        store = MemoryGrantStore()
        editor = GrantEditor(store)
        record = await editor.open("state", "789", "42")
        assert record.enabled_keys() == ()
        assert editor.saved is None

        editor.toggle("state_alerts_create")
        assert editor.dirty
        saved = await editor.save()
        assert saved.legacy["can_manage_state_alerts"] is True
        assert not editor.dirty

        stored = await store.get_grant("state", "789", "42")
        assert stored == saved

    asyncio.run(_run())


def test_toggle_rejects_unknown_key():
    async def _run():
        editor = GrantEditor(MemoryGrantStore())
        await editor.open("alliance", "A1", "1")
        with pytest.raises(ValueError):
            editor.toggle("state_view", True)

    asyncio.run(_run())


def test_toggle_requires_open_session():
    with pytest.raises(RuntimeError):
        GrantEditor(MemoryGrantStore()).toggle("state_view")


def test_failed_save_leaves_state_unchanged():
    async def _run():
        existing = GrantRecord.build("state", "789", "42", {"state_view": True})
        store = _FailingStore([existing], fail_on={"put"})
        editor = GrantEditor(store)
        await editor.open("state", "789", "42")
        editor.toggle("state_ops_edit", True)
        working = editor.working

        with pytest.raises(StoreUnavailable):
            await editor.save()

        assert editor.saved == existing
        assert editor.working == working
        assert await store.get_grant("state", "789", "42") == existing

    asyncio.run(_run())


def test_failed_delete_leaves_state_unchanged():
    async def _run():
        existing = GrantRecord.build("alliance", "A1", "1", {"alliance_alerts_view": True})
        editor = GrantEditor(_FailingStore([existing], fail_on={"delete"}))
        await editor.open("alliance", "A1", "1")
        with pytest.raises(StoreUnavailable):
            await editor.delete()
        assert editor.saved == existing

    asyncio.run(_run())


def test_delete_resets_to_empty_record():
    async def _run():
        existing = GrantRecord.build("state", "789", "42", {"state_view": True})
        store = MemoryGrantStore([existing])
        editor = GrantEditor(store)
        await editor.open("state", "789", "42")
        assert await editor.delete() is True
        assert editor.saved is None
        assert editor.working.enabled_keys() == ()
        assert await store.get_grant("state", "789", "42") is None

    asyncio.run(_run())


def test_memory_store_lists_members_and_granted_users():
    async def _run():
        store = MemoryGrantStore(
            [GrantRecord.build("state", "789", "9", {"state_view": True})],
            members={("state", "789"): [ScopeUser("1", "Ada")]},
        )
        users = await store.list_users_in_scope("state", "789")
        assert [(u.user_id, u.display_name) for u in users] == [("1", "Ada"), ("9", "9")]

    asyncio.run(_run())


def test_export_then_import_into_empty_store():
    async def _run():
        source = MemoryGrantStore(
            [
                GrantRecord.build("state", "789", "1", {"state_view": True}),
                GrantRecord.build("alliance", "A1", "1", {"alliance_alerts_create": True}),
            ]
        )
        document = await export_grants(source, "789", alliance_id="A1", alliance_label="WOC")
        target = MemoryGrantStore()
        summary = await import_grants(target, document)
        assert (summary.state_written, summary.alliance_written, summary.total) == (1, 1, 2)
        record = await target.get_grant("alliance", "A1", "1")
        assert record.legacy["can_post_alerts"] is True

    asyncio.run(_run())


def test_import_rejects_wrong_version_without_writing():
    async def _run():
        store = _FailingStore()
        with pytest.raises(MalformedImport):
            await import_grants(store, {"version": 1, "state_access_grants": [{"user_id": "1"}]})
        assert store.puts == 0

    asyncio.run(_run())


def test_build_grant_store_defaults_to_memory():
    assert isinstance(build_grant_store("memory"), MemoryGrantStore)
    assert isinstance(build_grant_store("bogus"), MemoryGrantStore)
