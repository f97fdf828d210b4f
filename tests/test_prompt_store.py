from __future__ import annotations

import pytest

from screener.models.schemas import Category
from screener.services.prompt_store import get_prompt, render_category_prompt, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt("analysis.task", ticker="2330.TW")

    assert "2330.TW" in prompt
    assert "$ticker" not in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="ticker"):
        render_prompt("analysis.task")


def test_get_prompt_rejects_non_string_nodes():
    with pytest.raises(TypeError):
        get_prompt("screening.criteria")


def test_category_variants_exist_for_every_category():
    for category in Category:
        assert render_category_prompt("screening.goal", category, count=5)
        assert get_prompt(f"screening.criteria.{category.value}")
