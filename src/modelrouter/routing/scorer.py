"""Rule scoring for model routing.

Scores a routing rule against the facts of a single request. Every
predicate present in the rule's ``if`` block that the request satisfies
adds a fixed weight; absent predicates add nothing. All scoring is local
and pure - no I/O, safe to call concurrently.

Predicates and weights (see ``RuleScorer.WEIGHTS``):
1. anyKeyword      +2  at least one keyword occurs in the prompt
2. allKeywords     +2  every keyword occurs in the prompt
3. fileLangIn      +1  request language is listed
4. filePathMatches +1  request file path matches a glob
5. context size    +1  file size within minContextKB/maxContextKB
6. privacyStrict   +3  rule and request are both privacy-strict
7. mode            +1  request mode is listed
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from modelrouter.config.models import RoutingRule


@dataclass
class RoutingContext:
    """Per-request facts used to evaluate rules."""
    prompt: str
    lang: str | None = None
    file_path: str | None = None
    file_size_kb: float | None = None
    mode: str | None = None
    privacy_strict: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        """Short description for logs and error messages."""
        parts = [f"prompt={len(self.prompt)} chars"]
        if self.lang:
            parts.append(f"lang={self.lang}")
        if self.file_path:
            parts.append(f"file={self.file_path}")
        if self.file_size_kb is not None:
            parts.append(f"size={self.file_size_kb}KB")
        if self.mode:
            parts.append(f"mode={self.mode}")
        if self.privacy_strict:
            parts.append("privacy-strict")
        return ", ".join(parts)


@lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> re.Pattern:
    """Compile a glob: ``**`` crosses directories, ``*`` and ``?`` do not."""
    parts = []
    for token in re.split(r"(\*\*|\*|\?)", pattern):
        if token == "**":
            parts.append(".*")
        elif token == "*":
            parts.append("[^/]*")
        elif token == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(token))
    return re.compile("".join(parts), re.IGNORECASE)


def matches_path(path: str, pattern: str) -> bool:
    """Glob match on a forward-slash path, case-insensitive."""
    normalized = path.replace("\\", "/")
    if _glob_regex(pattern).fullmatch(normalized):
        return True
    # "**/x" should also match "x" at the root
    return pattern.startswith("**/") and bool(_glob_regex(pattern[3:]).fullmatch(normalized))


class RuleScorer:
    """Computes a non-negative match score for a rule and a request."""

    WEIGHTS = {
        "any_keyword": 2,
        "all_keywords": 2,
        "file_lang": 1,
        "file_path": 1,
        "context_size": 1,
        "privacy": 3,
        "mode": 1,
    }

    def __init__(self, weights: dict[str, int] | None = None):
        self.weights = {**self.WEIGHTS, **(weights or {})}

    def score(self, rule: RoutingRule, context: RoutingContext) -> int:
        """Total score of ``rule`` for ``context``."""
        return sum(self.explain(rule, context).values())

    def explain(self, rule: RoutingRule, context: RoutingContext) -> dict[str, int]:
        """Weights contributed by each satisfied predicate."""
        cond = rule.condition
        hits: dict[str, int] = {}
        prompt = context.prompt.lower()

        if cond.any_keyword:
            if any(kw.lower() in prompt for kw in cond.any_keyword):
                hits["any_keyword"] = self.weights["any_keyword"]

        if cond.all_keywords:
            if all(kw.lower() in prompt for kw in cond.all_keywords):
                hits["all_keywords"] = self.weights["all_keywords"]

        if cond.file_lang_in and context.lang:
            langs = {lang.lower() for lang in cond.file_lang_in}
            if context.lang.lower() in langs:
                hits["file_lang"] = self.weights["file_lang"]

        if cond.file_path_matches and context.file_path:
            if any(matches_path(context.file_path, p) for p in cond.file_path_matches):
                hits["file_path"] = self.weights["file_path"]

        if (cond.min_context_kb is not None or cond.max_context_kb is not None) \
                and context.file_size_kb is not None:
            size = context.file_size_kb
            above_min = cond.min_context_kb is None or size >= cond.min_context_kb
            below_max = cond.max_context_kb is None or size <= cond.max_context_kb
            if above_min and below_max:
                hits["context_size"] = self.weights["context_size"]

        if cond.privacy_strict is True and context.privacy_strict is True:
            hits["privacy"] = self.weights["privacy"]

        if cond.mode and context.mode:
            if context.mode in cond.mode:
                hits["mode"] = self.weights["mode"]

        return hits

    @staticmethod
    def describe(hits: dict[str, int]) -> str:
        """Human-readable breakdown, e.g. ``any_keyword+2, mode+1``."""
        if not hits:
            return "no predicates matched"
        return ", ".join(f"{name}+{weight}" for name, weight in hits.items())
