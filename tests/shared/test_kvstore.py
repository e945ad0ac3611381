import json

import pytest

from shared.errors import StoreUnavailable
from shared.kvstore import JsonFileKeyValueStore, MemoryKeyValueStore, read_json_document, write_json_document


def test_json_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "nested" / "store.json"
    JsonFileKeyValueStore(path).put("discord_role_map_v1", '{"version":1}')

    reopened = JsonFileKeyValueStore(path)
    assert reopened.get("discord_role_map_v1") == '{"version":1}'
    assert reopened.get("missing") is None

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["updated_at"]
    assert not path.with_suffix(".json.tmp").exists()


def test_json_file_store_reports_corrupt_file(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreUnavailable) as excinfo:
        JsonFileKeyValueStore(path).get("anything")
    assert excinfo.value.operation == "read"


def test_json_document_helpers_tolerate_garbage():
    kv = MemoryKeyValueStore({"bad": "{oops"})
    assert read_json_document(kv, "bad") is None
    assert read_json_document(kv, "missing") is None
    write_json_document(kv, "good", {"version": 1, "name": "é"})
    assert read_json_document(kv, "good") == {"version": 1, "name": "é"}
    assert kv.snapshot()["good"] == '{"version":1,"name":"é"}'
