"""Language rule sets: the built-in Kotlin table and JSON rule files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ktedit_core import LOG, ConfigLoadError
from ktedit_models import LanguageSpec, RuleSet


RULES_DIR = Path(__file__).with_name("rules")

KOTLIN_RULES = RuleSet(
    keywords=frozenset(
        {
            "fun", "class", "object", "val", "var", "if", "else", "when", "for", "while", "do", "return",
            "null", "true", "false", "in", "is", "interface", "sealed", "data", "enum", "try", "catch",
            "finally", "throw", "super", "this", "as", "typealias", "package", "import",
        }
    ),
    types=frozenset({"Int", "String", "Float", "Double", "Boolean", "Char", "Long", "Short", "Any", "Unit", "List", "Map", "Set"}),
    line_comment="//",
    block_comment=("/*", "*/"),
    string_quote='"',
)

KOTLIN_BUILTIN = "Kotlin (built-in)"

LANGUAGES: tuple[LanguageSpec, ...] = (
    LanguageSpec(
        name=KOTLIN_BUILTIN,
        rules_file=None,
        compile_filename="Main.kt",
        save_suggestion="untitled.kt",
        file_filter="Kotlin Files (*.kt *.kts);;Text Files (*.txt);;All Files (*)",
    ),
    LanguageSpec(
        name="Python (rules/python.json)",
        rules_file="python.json",
        compile_filename="script.py",
        save_suggestion="untitled.py",
        file_filter="Python Files (*.py);;Text Files (*.txt);;All Files (*)",
    ),
    LanguageSpec(
        name="Java (rules/java.json)",
        rules_file="java.json",
        compile_filename="Main.java",
        save_suggestion="Untitled.java",
        file_filter="Java Files (*.java);;Text Files (*.txt);;All Files (*)",
    ),
)


def language_for_name(name: str | None) -> LanguageSpec:

    for lang in LANGUAGES:
        if lang.name == name:
            return lang
    return LANGUAGES[0]


def _string_list(obj: dict[str, Any], key: str) -> frozenset[str]:

    raw = obj.get(key)
    if raw is None:
        return frozenset()
    if not isinstance(raw, list) or not all(isinstance(x, str) for x in raw):
        raise ConfigLoadError(f"'{key}' must be an array of strings")
    return frozenset(x for x in raw if x)


def _optional_marker(obj: dict[str, Any], key: str, where: str) -> str | None:

    v = obj.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise ConfigLoadError(f"'{where}{key}' must be a string")
    return v or None


def parse_rule_set(data: Any) -> RuleSet:
    """Build a RuleSet from a decoded rule document, raising ConfigLoadError on a bad shape."""

    if not isinstance(data, dict):
        raise ConfigLoadError("rule document must be a JSON object")

    comments = data.get("comments")
    line = block_start = block_end = None
    if comments is not None:
        if not isinstance(comments, dict):
            raise ConfigLoadError("'comments' must be an object")
        line = _optional_marker(comments, "line", "comments.")
        block_start = _optional_marker(comments, "blockStart", "comments.")
        block_end = _optional_marker(comments, "blockEnd", "comments.")

    return RuleSet(
        keywords=_string_list(data, "keywords"),
        types=_string_list(data, "types"),
        line_comment=line,
        block_comment=(block_start, block_end) if block_start and block_end else None,
        string_quote=_optional_marker(data, "strings", ""),
    )


def load_rule_set(path: Path) -> RuleSet | None:
    """Load a rule file; any failure degrades to no RuleSet."""

    try:
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigLoadError(f"cannot read {path}: {e}") from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigLoadError(f"{path} is not valid JSON: {e}") from e
        rules = parse_rule_set(data)
    except ConfigLoadError as e:
        LOG.warning("Rule set unavailable, highlighting disabled: %s", e)
        return None

    LOG.debug(
        "Loaded rule set %s keywords=%d types=%d",
        path.name,
        len(rules.keywords),
        len(rules.types),
    )
    return rules


def rules_for_language(lang: LanguageSpec, rules_dir: Path = RULES_DIR) -> RuleSet | None:

    if lang.rules_file is None:
        return KOTLIN_RULES
    return load_rule_set(rules_dir / lang.rules_file)
