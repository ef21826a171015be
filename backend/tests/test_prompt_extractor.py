"""
Tests for marker-based prompt set extraction
"""
import pytest

from promptdiff.core.errors import NoSystemPromptFound
from promptdiff.services.prompt_extractor import (
    PROMPT_MARKERS,
    PromptName,
    Strategy,
    extract_prompt,
    extract_prompt_set,
    missing_label,
    prompt_label,
)
from promptdiff.services.scope_extractor import TemplateResolver


BUNDLE = """#!/usr/bin/env node
const PRODUCT = "Claude Code";
function systemPrompt(cwd) {
  return `You are an interactive CLI tool that helps users with ${PRODUCT}.
Working directory: ${cwd}`;
}
const bashDescription = "Executes a given bash command in a persistent shell session.";
const todo = 'Use this tool to create and manage a structured task list for the session.';
"""


class TestExtractPromptSet:
    """Tests for extract_prompt_set"""

    def test_all_markers_recorded(self):
        result = extract_prompt_set(BUNDLE, "1.0.0", "package/cli.js")
        assert result.version == "1.0.0"
        assert result.source_path == "package/cli.js"
        assert list(result.prompts) == list(PROMPT_MARKERS)

    def test_system_prompt_resolved_through_scope(self):
        result = extract_prompt_set(BUNDLE, "1.0.0", "package/cli.js")
        system = result.get(PromptName.SYSTEM)
        assert system.strategy is Strategy.SCOPE
        assert system.text == (
            "`You are an interactive CLI tool that helps users with Claude Code.\n"
            "Working directory: ${cwd}`"
        )
        assert system.length == len(system.text)

    def test_plain_string_prompts_use_locator(self):
        result = extract_prompt_set(BUNDLE, "1.0.0", "package/cli.js")
        bash = result.get(PromptName.BASH)
        assert bash.strategy is Strategy.LEXICAL
        assert bash.text == '"Executes a given bash command in a persistent shell session."'
        assert result.text(PromptName.TODO) == (
            "'Use this tool to create and manage a structured task list for the session.'"
        )

    def test_optional_prompts_may_be_absent(self):
        result = extract_prompt_set(BUNDLE, "1.0.0", "package/cli.js")
        for name in (PromptName.COMPACT, PromptName.INIT, PromptName.BASH_PREFIX):
            prompt = result.get(name)
            assert prompt.text is None
            assert prompt.length == 0
            assert prompt.strategy is None
            assert not prompt.found
        assert result.has_alternates()

    def test_missing_system_prompt_is_fatal(self):
        source = 'const bash = "Executes a given bash command in a persistent shell";'
        with pytest.raises(NoSystemPromptFound) as exc_info:
            extract_prompt_set(source, "0.9.0", "package/cli.mjs")
        assert exc_info.value.message == "No system prompt found in package/cli.mjs for version 0.9.0"
        assert exc_info.value.status_code == 422

    def test_unparseable_bundle_still_extracts(self):
        source = 'const broken = ; const p = `You are an interactive CLI tool. ${x}`;'
        result = extract_prompt_set(source, "1.0.0", "package/cli.js")
        system = result.get(PromptName.SYSTEM)
        assert system.strategy is Strategy.LEXICAL
        assert system.text == "`You are an interactive CLI tool. ${x}`"
        assert not result.has_alternates()

    def test_custom_markers(self):
        markers = {PromptName.SYSTEM: "helps users"}
        result = extract_prompt_set(BUNDLE, "1.0.0", "package/cli.js", markers=markers)
        assert list(result.prompts) == [PromptName.SYSTEM]
        assert result.text(PromptName.SYSTEM).startswith("`You are an interactive CLI tool")

    def test_to_dict(self):
        result = extract_prompt_set(BUNDLE, "1.0.0", "package/cli.js")

        data = result.to_dict()
        assert data["prompts"]["system"]["strategy"] == "scope"
        assert data["prompts"]["system"]["label"] == "System"
        assert data["prompts"]["compact"] == {
            "label": "Conversation Compacting",
            "length": 0,
            "found": False,
            "strategy": None,
            "text": None,
        }

        lengths_only = result.to_dict(include_text=False)
        assert "text" not in lengths_only["prompts"]["system"]


class TestExtractPrompt:

    def test_marker_not_present(self):
        prompt = extract_prompt(TemplateResolver(BUNDLE), "not in the bundle")
        assert prompt.text is None
        assert not prompt.found


class TestLabels:

    def test_labels(self):
        assert prompt_label(PromptName.COMPACT) == "Conversation Compacting"
        assert missing_label(PromptName.COMPACT) == "Conversation compacting prompt"
        assert missing_label(PromptName.INIT) == "/init prompt"
        assert prompt_label(PromptName.TODO) == "Todo tool"
