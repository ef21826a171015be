"""
Prompt set extraction.

Looks up each marker of a fixed table in one CLI source file and records
the literal around it, preferring the scope-resolved template and falling
back to the lexical locator.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from promptdiff.core.errors import NoSystemPromptFound
from promptdiff.core.logging import get_logger, log_prompt_extraction
from promptdiff.services.literal_locator import locate_literal
from promptdiff.services.scope_extractor import TemplateResolver

logger = get_logger(__name__)


class PromptName(str, Enum):
    """Logical prompts extracted from the CLI bundle"""
    SYSTEM = "system"
    COMPACT = "compact"
    BASH = "bash"
    INIT = "init"
    TODO = "todo"
    BASH_PREFIX = "bash_prefix"


class Strategy(str, Enum):
    """Which extractor produced a prompt"""
    SCOPE = "scope"
    LEXICAL = "lexical"


# Distinctive text that identifies each prompt inside the bundle
PROMPT_MARKERS: Dict[PromptName, str] = {
    PromptName.SYSTEM: "You are an interactive CLI tool",
    PromptName.COMPACT: "Your task is to create a detailed summary of the conversation",
    PromptName.BASH: "Executes a given bash command in a persistent shell",
    PromptName.INIT: "Please analyze this codebase and create a CLAUDE.md file",
    PromptName.TODO: "Use this tool to create and manage a structured task list",
    PromptName.BASH_PREFIX: "This document defines risk levels for actions that the",
}

# Tab title and the wording used when a version lacks the prompt
PROMPT_LABELS: Dict[PromptName, Tuple[str, str]] = {
    PromptName.SYSTEM: ("System", "System prompt"),
    PromptName.COMPACT: ("Conversation Compacting", "Conversation compacting prompt"),
    PromptName.BASH: ("Bash Tools", "Bash tools prompt"),
    PromptName.INIT: ("Init", "/init prompt"),
    PromptName.TODO: ("Todo tool", "Todo list prompt"),
    PromptName.BASH_PREFIX: ("Bash Prefix", "Bash prefix prompt"),
}


def prompt_label(name: PromptName) -> str:
    return PROMPT_LABELS[name][0]


def missing_label(name: PromptName) -> str:
    return PROMPT_LABELS[name][1]


@dataclass(frozen=True)
class ExtractedPrompt:
    """One prompt as found in a version (text is None when absent)"""
    text: Optional[str]
    strategy: Optional[Strategy] = None

    @property
    def length(self) -> int:
        return len(self.text) if self.text else 0

    @property
    def found(self) -> bool:
        return bool(self.text)


@dataclass
class PromptSet:
    """All prompts extracted from one version's CLI file"""
    version: str
    source_path: str
    prompts: Dict[PromptName, ExtractedPrompt] = field(default_factory=dict)

    def get(self, name: PromptName) -> ExtractedPrompt:
        return self.prompts.get(name, ExtractedPrompt(text=None))

    def text(self, name: PromptName) -> Optional[str]:
        return self.get(name).text

    def has_alternates(self) -> bool:
        """True if any prompt besides the system prompt was found"""
        return any(
            prompt.found for name, prompt in self.prompts.items()
            if name is not PromptName.SYSTEM
        )

    def to_dict(self, include_text: bool = True) -> Dict[str, Any]:
        prompts = {}
        for name, prompt in self.prompts.items():
            entry: Dict[str, Any] = {
                "label": prompt_label(name),
                "length": prompt.length,
                "found": prompt.found,
                "strategy": prompt.strategy.value if prompt.strategy else None,
            }
            if include_text:
                entry["text"] = prompt.text
            prompts[name.value] = entry
        return {
            "version": self.version,
            "source_path": self.source_path,
            "prompts": prompts,
        }


def extract_prompt(resolver: TemplateResolver, marker: str) -> ExtractedPrompt:
    """Literal containing `marker`: scope-resolved first, lexical second"""
    text = None
    try:
        text = resolver.resolve(marker)
    except Exception as e:
        logger.debug("Scope resolution raised", marker=marker[:40], error=str(e))

    if text:
        return ExtractedPrompt(text=text, strategy=Strategy.SCOPE)

    text = locate_literal(resolver.source, marker)
    if text:
        return ExtractedPrompt(text=text, strategy=Strategy.LEXICAL)

    return ExtractedPrompt(text=None)


def extract_prompt_set(
    source: str,
    version: str,
    source_path: str,
    markers: Optional[Dict[PromptName, str]] = None,
) -> PromptSet:
    """
    Extract every marked prompt from one CLI source file.

    Args:
        source: Decoded contents of cli.js / cli.mjs
        version: Version the file belongs to (for messages and logs)
        source_path: Archive path of the file
        markers: Marker table, PROMPT_MARKERS by default

    Raises:
        NoSystemPromptFound: If the system prompt cannot be extracted. All
            other prompts are optional.
    """
    if markers is None:
        markers = PROMPT_MARKERS

    start = time.perf_counter()
    resolver = TemplateResolver(source)
    result = PromptSet(version=version, source_path=source_path)

    for name, marker in markers.items():
        result.prompts[name] = extract_prompt(resolver, marker)

    duration_ms = (time.perf_counter() - start) * 1000
    lengths = {name.value: prompt.length for name, prompt in result.prompts.items()}
    strategies = {
        name.value: prompt.strategy.value if prompt.strategy else None
        for name, prompt in result.prompts.items()
    }

    if not result.get(PromptName.SYSTEM).found:
        error = NoSystemPromptFound(version, source_path)
        log_prompt_extraction(version, source_path, lengths, strategies, duration_ms, error=error.message)
        raise error

    log_prompt_extraction(version, source_path, lengths, strategies, duration_ms)
    return result
