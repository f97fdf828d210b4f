"""Prompt catalog backed by ``screener/prompts/prompts.json``.

Keys are dotted paths into the JSON tree (``screening.goal.longTerm``) and
leaves are ``string.Template`` texts. The file is re-read when its mtime changes.
"""

from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

from screener.models.schemas import Category

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"

_cache: tuple[int, dict[str, Any]] | None = None


def _catalog() -> dict[str, Any]:
    global _cache
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _cache is not None and _cache[0] == mtime_ns:
        return _cache[1]

    with PROMPTS_PATH.open(encoding="utf-8") as handle:
        catalog = json.load(handle)
    if not isinstance(catalog, dict):
        raise ValueError(f"{PROMPTS_PATH.name} must contain a JSON object at the top level.")
    _cache = (mtime_ns, catalog)
    return catalog


def get_prompt(key: str) -> str:
    node: Any = _catalog()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(f"Prompt key not found: {key}")
        node = node[part]
    if not isinstance(node, str):
        raise TypeError(f"Prompt '{key}' is a section, not a template")
    return node


def render_prompt(key: str, **values: Any) -> str:
    try:
        return Template(get_prompt(key)).substitute(values)
    except KeyError as exc:
        if exc.args and str(exc.args[0]).startswith("Prompt key not found"):
            raise
        raise KeyError(f"Prompt '{key}' needs a value for '{exc.args[0]}'") from exc


def render_category_prompt(key: str, category: Category, **values: Any) -> str:
    """Render the variant of ``key`` written for ``category``."""
    return render_prompt(f"{key}.{category.value}", **values)
