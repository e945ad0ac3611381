import asyncio
import json

import pytest

import modules.mentions.templates as templates_module
from modules.mentions.templates import TEMPLATES_KEY, TemplateLibrary
from shared.errors import MalformedImport


@pytest.fixture
def clock(monkeypatch):
    stamps = iter(f"2025-01-0{day}T00:00:00.000Z" for day in range(1, 10))
    monkeypatch.setattr(templates_module, "_now_iso", lambda: next(stamps))


def test_save_list_and_update(kv, clock):
    async def _run():
        library = TemplateLibrary(kv)
        general = await library.save_template("General", "Hello @Member")
        woc = await library.save_template("War", "@R5 to #war-room", alliance_code="woc")
        await library.save_template("Other", "hi", alliance_code="ABC")
        updated = await library.save_template("General v2", "Hi", template_id=general.template_id)
        return library, general, woc, updated

    library, general, woc, updated = asyncio.run(_run())
    assert woc.alliance_code == "WOC" and woc.scope == "alliance"
    assert updated.template_id == general.template_id

    global_only = asyncio.run(library.list_templates())
    assert [t.name for t in global_only] == ["General v2"]
    for_woc = asyncio.run(library.list_templates("woc"))
    assert [t.name for t in for_woc] == ["General v2", "War"]

    document = json.loads(kv.get(TEMPLATES_KEY))
    assert document["version"] == 1
    assert {"id", "scope", "allianceCode", "name", "body", "updatedUtc"} <= set(document["templates"][0])


def test_name_is_required(kv):
    with pytest.raises(ValueError):
        asyncio.run(TemplateLibrary(kv).save_template("  ", "body"))


def test_delete(kv):
    async def _run():
        library = TemplateLibrary(kv)
        saved = await library.save_template("Temp", "x")
        return await library.delete_template(saved.template_id), await library.delete_template("missing")

    assert asyncio.run(_run()) == (True, False)


def test_render_uses_template_alliance(kv, sample_store):
    async def _run():
        library = TemplateLibrary(kv)
        saved = await library.save_template("War", "@R5 to #war-room", alliance_code="WOC")
        return library.render(saved, sample_store)

    assert asyncio.run(_run()) == "<@&999> to <#901>"


def test_import_rejects_bad_document_and_keeps_library(kv):
    async def _run():
        library = TemplateLibrary(kv)
        await library.save_template("Keep", "x")
        with pytest.raises(MalformedImport):
            await library.import_document({"version": 2, "templates": []})
        return await library.list_templates()

    assert [t.name for t in asyncio.run(_run())] == ["Keep"]


def test_export_then_import(kv):
    async def _run():
        library = TemplateLibrary(kv)
        await library.save_template("One", "1", alliance_code="WOC")
        exported = await library.export_document()
        other = TemplateLibrary(type(kv)())
        imported = await other.import_document(exported)
        return exported, imported

    exported, imported = asyncio.run(_run())
    assert "exportedUtc" in exported
    assert [(t.name, t.alliance_code) for t in imported] == [("One", "WOC")]
