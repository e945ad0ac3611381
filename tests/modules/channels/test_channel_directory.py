import asyncio
import json

import pytest

from modules.channels.directory import ChannelDirectory, directory_key
from shared.kvstore import MemoryKeyValueStore


def _defaults(rows):
    return [row.channel_name for row in rows if row.is_default]


def test_first_channel_becomes_default(kv):
    async def _run():
        directory = ChannelDirectory(kv)
        first = await directory.add("789", "#announcements", "100")
        second = await directory.add("789", "alerts", "200")
        return first, second, await directory.list_channels("789")

    first, second, rows = asyncio.run(_run())
    assert first.is_default and not second.is_default
    assert [row.channel_name for row in rows] == ["announcements", "alerts"]


def test_add_requires_name_and_id(kv):
    with pytest.raises(ValueError):
        asyncio.run(ChannelDirectory(kv).add("789", "ops", " "))


def test_set_default_is_one_write_with_exactly_one_default(kv):
    writes = []
    original_put = kv.put

    def _recording_put(key, value):
        writes.append(key)
        original_put(key, value)

    kv.put = _recording_put

    async def _run():
        directory = ChannelDirectory(kv)
        await directory.add("789", "announcements", "100")
        alerts = await directory.add("789", "alerts", "200")
        writes.clear()
        rows = await directory.set_default("789", alerts.row_id)
        return rows, await directory.default_channel("789")

    rows, default = asyncio.run(_run())
    assert writes == [directory_key("789")]
    assert _defaults(rows) == ["alerts"]
    assert rows[0].channel_name == "alerts"
    assert default.channel_id == "200"


def test_removing_default_promotes_first_by_name(kv):
    async def _run():
        directory = ChannelDirectory(kv)
        ops = await directory.add("789", "ops", "1")
        await directory.add("789", "zeta", "2")
        await directory.add("789", "alpha", "3")
        return await directory.remove("789", ops.row_id)

    rows = asyncio.run(_run())
    assert _defaults(rows) == ["alpha"]
    assert [row.channel_name for row in rows] == ["alpha", "zeta"]


def test_toggle_active_hides_default_from_default_lookup(kv):
    async def _run():
        directory = ChannelDirectory(kv)
        row = await directory.add("789", "ops", "1")
        await directory.toggle_active("789", row.row_id)
        active = await directory.list_channels("789", active_only=True)
        return active, await directory.default_channel("789")

    active, default = asyncio.run(_run())
    assert active == [] and default is None


def test_unknown_row_raises_value_error(kv):
    with pytest.raises(ValueError):
        asyncio.run(ChannelDirectory(kv).set_default("789", "missing"))


def test_states_are_independent(kv):
    async def _run():
        directory = ChannelDirectory(kv)
        await directory.add("789", "ops", "1")
        first_other = await directory.add("123", "ops", "2")
        return first_other

    assert asyncio.run(_run()).is_default


def test_stored_document_with_two_defaults_is_repaired():
    payload = {
        "version": 1,
        "rows": [
            {"id": "a", "channel_name": "beta", "channel_id": "1", "active": True, "is_default": True},
            {"id": "b", "channel_name": "alpha", "channel_id": "2", "active": True, "is_default": True},
        ],
    }
    kv = MemoryKeyValueStore({directory_key("789"): json.dumps(payload)})
    rows = asyncio.run(ChannelDirectory(kv).list_channels("789"))
    assert _defaults(rows) == ["alpha"]
