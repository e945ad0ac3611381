"""Broadcast template library stored as one versioned document.

Templates are either global or scoped to one alliance. Rendering resolves the
body with the template's own alliance so alliance mappings take precedence.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from shared.errors import MalformedImport
from shared.kvstore import KeyValueStore, read_json_document, write_json_document
from shared.mentions.resolver import resolve_template
from shared.mentions.store import MentionStore, normalize_alliance_code
from shared.sheets.async_adapter import astore_call

__all__ = ["TEMPLATES_KEY", "BroadcastTemplate", "TemplateLibrary", "parse_templates_document"]

log = logging.getLogger("hq.mentions.templates")

TEMPLATES_KEY = "discord_broadcast_templates_v1"
_VERSION = 1


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class BroadcastTemplate:
    template_id: str
    name: str
    body: str
    alliance_code: str = ""
    updated_utc: str = ""

    @property
    def scope(self) -> str:
        return "alliance" if self.alliance_code else "global"

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.template_id,
            "scope": self.scope,
            "allianceCode": self.alliance_code or None,
            "name": self.name,
            "body": self.body,
            "updatedUtc": self.updated_utc,
        }

    @classmethod
    def from_document(cls, raw: Mapping[str, Any]) -> Optional["BroadcastTemplate"]:
        template_id = str(raw.get("id") or "").strip()
        name = str(raw.get("name") or "").strip()
        if not template_id or not name:
            return None
        code = normalize_alliance_code(raw.get("allianceCode")) if raw.get("scope") == "alliance" else ""
        return cls(
            template_id=template_id,
            name=name,
            body=str(raw.get("body") or ""),
            alliance_code=code,
            updated_utc=str(raw.get("updatedUtc") or ""),
        )


def parse_templates_document(payload: object, *, strict: bool = False) -> List[BroadcastTemplate]:
    """Return the templates in ``payload``.

    Strict parsing raises :class:`MalformedImport`; lenient parsing returns an
    empty list for anything that is not a version 1 document.
    """

    ok = isinstance(payload, Mapping) and payload.get("version") == _VERSION and isinstance(payload.get("templates"), list)
    if not ok:
        if strict:
            raise MalformedImport("templates document must be {version: 1, templates: [...]}")
        if payload is not None:
            log.warning("templates document unreadable; loading empty", extra={"key": TEMPLATES_KEY})
        return []
    templates: List[BroadcastTemplate] = []
    for index, raw in enumerate(payload["templates"]):
        if not isinstance(raw, Mapping):
            if strict:
                raise MalformedImport(f"templates[{index}] must be an object")
            continue
        template = BroadcastTemplate.from_document(raw)
        if template is not None:
            templates.append(template)
    return templates


def _document(templates: List[BroadcastTemplate]) -> Dict[str, Any]:
    return {"version": _VERSION, "templates": [template.to_document() for template in templates]}


class TemplateLibrary:
    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def _load(self) -> List[BroadcastTemplate]:
        return parse_templates_document(read_json_document(self.kv, TEMPLATES_KEY))

    def _write(self, templates: List[BroadcastTemplate]) -> None:
        write_json_document(self.kv, TEMPLATES_KEY, _document(templates))

    def _save(self, template: BroadcastTemplate) -> BroadcastTemplate:
        templates = self._load()
        for index, existing in enumerate(templates):
            if existing.template_id == template.template_id:
                templates[index] = template
                break
        else:
            templates.insert(0, template)
        self._write(templates)
        return template

    def _delete(self, template_id: str) -> bool:
        templates = self._load()
        remaining = [template for template in templates if template.template_id != template_id]
        if len(remaining) == len(templates):
            return False
        self._write(remaining)
        return True

    def _import(self, payload: object) -> List[BroadcastTemplate]:
        templates = parse_templates_document(payload, strict=True)
        self._write(templates)
        return templates

    async def list_templates(self, alliance_code: str | None = None) -> List[BroadcastTemplate]:
        """Global templates, plus those of ``alliance_code`` when given; newest first."""

        code = normalize_alliance_code(alliance_code)
        templates = await astore_call("load templates", self._load)
        visible = [t for t in templates if not t.alliance_code or (code and t.alliance_code == code)]
        return sorted(visible, key=lambda t: t.updated_utc, reverse=True)

    async def get_template(self, template_id: str) -> Optional[BroadcastTemplate]:
        for template in await astore_call("load templates", self._load):
            if template.template_id == template_id:
                return template
        return None

    async def save_template(
        self,
        name: str,
        body: str,
        *,
        alliance_code: str | None = None,
        template_id: str | None = None,
    ) -> BroadcastTemplate:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("template name is required")
        template = BroadcastTemplate(
            template_id=template_id or uuid.uuid4().hex[:16],
            name=clean_name,
            body=body or "",
            alliance_code=normalize_alliance_code(alliance_code),
            updated_utc=_now_iso(),
        )
        saved = await astore_call("save template", self._save, template)
        log.info("template saved", extra={"template_id": saved.template_id, "scope": saved.scope})
        return saved

    async def delete_template(self, template_id: str) -> bool:
        removed = await astore_call("delete template", self._delete, template_id)
        log.info("template delete", extra={"template_id": template_id, "removed": removed})
        return removed

    async def export_document(self) -> Dict[str, Any]:
        document = _document(await astore_call("load templates", self._load))
        document["exportedUtc"] = _now_iso()
        return document

    async def import_document(self, payload: object) -> List[BroadcastTemplate]:
        """Replace the whole library; nothing is written on ``MalformedImport``."""

        templates = await astore_call("import templates", self._import, payload)
        log.info("templates imported", extra={"count": len(templates)})
        return templates

    @staticmethod
    def render(template: BroadcastTemplate, store: MentionStore) -> str:
        return resolve_template(template.body, template.alliance_code or None, store)

