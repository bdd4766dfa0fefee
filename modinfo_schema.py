"""
Display-side reading of a mod's ``modinfo.json``.

The registry stores the manifest text verbatim and never interprets it.  This
module is for shells that want to show a mod's declared metadata.

CDDA mod manifests are a JSON array of typed objects; the one with
``"type": "MOD_INFO"`` describes the mod:

[
    {
        "type": "MOD_INFO",
        "id": "mutation_rebalance",
        "name": "Mutation Rebalance",
        "authors": ["someone"],
        "description": "Rebalances mutations.",
        "category": "rebalance",
        "dependencies": ["dda"]
    }
]

A bare object (not wrapped in an array) is accepted too.
"""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

MOD_INFO_TYPE = "MOD_INFO"

_log = logging.getLogger(__name__)


class ModInfo(BaseModel):
    """The MOD_INFO entry of a modinfo.json."""

    model_config = ConfigDict(extra="ignore")

    type: str = MOD_INFO_TYPE
    id: str
    name: str
    authors: list[str] = Field(default_factory=list)
    maintainers: list[str] = Field(default_factory=list)
    description: str = ""
    category: str | None = None
    version: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    obsolete: bool = False

    @field_validator("type")
    @classmethod
    def _check_type(cls, v: str) -> str:
        if v.upper() != MOD_INFO_TYPE:
            raise ValueError(f"Expected type {MOD_INFO_TYPE!r}, got {v!r}")
        return MOD_INFO_TYPE

    @field_validator("authors", "maintainers", "dependencies", mode="before")
    @classmethod
    def _listify(cls, v):
        if isinstance(v, str):
            return [v]
        return v


def parse_modinfo(text: str) -> ModInfo:
    """Parse manifest text into a ModInfo.

    Raises ``json.JSONDecodeError`` for malformed JSON and ``ValueError``
    (including ``pydantic.ValidationError``) when no valid MOD_INFO entry is
    present.
    """
    data = json.loads(text)
    entries = data if isinstance(data, list) else [data]
    for entry in entries:
        if isinstance(entry, dict) and str(entry.get("type", "")).upper() == MOD_INFO_TYPE:
            return ModInfo.model_validate(entry)
    raise ValueError("No MOD_INFO entry found in manifest")


def describe(text: str) -> ModInfo | None:
    """Lenient variant of parse_modinfo for display: None when unreadable."""
    try:
        return parse_modinfo(text)
    except (ValueError, ValidationError) as exc:
        _log.debug("Could not interpret manifest: %s", exc)
        return None
