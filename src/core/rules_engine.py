r"""Rule validation, compilation and matching logic (core domain).

Patterns and keywords are compared against normalized text: lowercase, with
only letters, digits and whitespace left, and accents folded unless folding is
turned off. A pattern such as ``t\.me`` or ``\$\d+`` therefore compiles but can
never match; ``validate_rule`` logs a warning for such literals.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Iterable, List, Optional, Tuple

from core.errors import ValidationError
from core.models import Rule
from core.normalizer import normalize

LOGGER = logging.getLogger(__name__)

# Unescaped characters that are never regex syntax, so always literal.
_PLAIN_PUNCTUATION = frozenset("/@#%&'\";~`")


@dataclass(frozen=True)
class _CompiledRule:
    rule: Rule
    label: str
    regex: Optional[re.Pattern]
    keywords: Optional[Tuple[str, ...]]

    def matches(self, normalized_text: str) -> bool:
        if self.regex is not None:
            return self.regex.search(normalized_text) is not None
        return all(keyword in normalized_text for keyword in self.keywords or ())


def _describe(rule: Rule, index: Optional[int]) -> str:
    where = f"rule #{index}" if index is not None else "rule"
    if rule.name:
        where = f"{where} '{rule.name}'"
    return where


def _compile_rule(rule: Rule, index: Optional[int], fold_diacritics: bool) -> _CompiledRule:
    where = _describe(rule, index)
    meta = {"index": index, "name": rule.name} if index is not None else {"name": rule.name}

    if not rule.name or not rule.name.strip():
        raise ValidationError(f"{where}: rule name is required", meta)
    if rule.pattern and rule.keywords:
        raise ValidationError(f"{where}: rule cannot have both pattern and keywords", meta)

    if rule.pattern:
        try:
            regex = re.compile(rule.pattern, re.IGNORECASE)
        except re.error as exc:
            raise ValidationError(
                f"{where}: invalid regex pattern '{rule.pattern}': {exc}",
                {**meta, "pattern": rule.pattern},
            ) from exc
        return _CompiledRule(rule=rule, label=rule.pattern, regex=regex, keywords=None)

    if rule.keywords:
        normalized = tuple(normalize(keyword, fold_diacritics) for keyword in rule.keywords)
        # An empty normalized keyword would be a substring of every message.
        if not all(normalized):
            raise ValidationError(
                f"{where}: keywords must contain letters or digits",
                {**meta, "keywords": list(rule.keywords)},
            )
        return _CompiledRule(
            rule=rule,
            label=", ".join(rule.keywords),
            regex=None,
            keywords=normalized,
        )

    raise ValidationError(f"{where}: rule must have either pattern or keywords", meta)


def _unmatchable_literals(pattern: str, fold_diacritics: bool) -> List[str]:
    """Return literal characters of ``pattern`` that normalized text never holds.

    Character classes are skipped, since one of their members may still match.
    """

    found: List[str] = []
    in_class = False
    index = 0
    while index < len(pattern):
        ch = pattern[index]
        if ch == "\\" and index + 1 < len(pattern):
            escaped = pattern[index + 1]
            index += 2
            if not in_class and not escaped.isalnum() and not escaped.isspace():
                found.append(escaped)
            continue
        index += 1
        if in_class:
            in_class = ch != "]"
        elif ch == "[":
            in_class = True
        elif ch in _PLAIN_PUNCTUATION:
            found.append(ch)
        elif not ch.isascii() and normalize(ch, fold_diacritics) != ch.lower():
            found.append(ch)
    return found


def validate_rule(rule: Rule, index: Optional[int] = None, fold_diacritics: bool = True) -> None:
    """Raise ValidationError unless ``rule`` satisfies the rule invariants."""

    _compile_rule(rule, index, fold_diacritics)
    if rule.pattern:
        unmatchable = _unmatchable_literals(rule.pattern, fold_diacritics)
        if unmatchable:
            LOGGER.warning(
                "Pattern %r of rule %r contains %s, which normalized text never contains",
                rule.pattern,
                rule.name,
                " ".join(dict.fromkeys(unmatchable)),
            )


class Matcher:
    """Immutable compiled snapshot of a rule list.

    A matcher is never mutated after it is built, so it can be shared by any
    number of concurrent readers.
    """

    __slots__ = ("_compiled", "_rules", "_fold_diacritics", "_version")

    def __init__(
        self,
        compiled: Iterable[_CompiledRule],
        fold_diacritics: bool = True,
        version: int = 0,
    ) -> None:
        self._compiled = tuple(compiled)
        self._rules = tuple(entry.rule for entry in self._compiled)
        self._fold_diacritics = fold_diacritics
        self._version = version

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self._rules

    @property
    def version(self) -> int:
        return self._version

    @property
    def fold_diacritics(self) -> bool:
        return self._fold_diacritics

    def __len__(self) -> int:
        return len(self._compiled)

    def __repr__(self) -> str:
        return f"Matcher(rules={len(self)}, version={self._version})"

    def normalize(self, text: str) -> str:
        return normalize(text, self._fold_diacritics)

    def match(self, text: str) -> bool:
        """Return True as soon as one rule, in rule order, is satisfied."""

        normalized = self.normalize(text)
        return any(entry.matches(normalized) for entry in self._compiled)

    def find_matches(self, text: str) -> List[str]:
        """Return the label of every satisfied rule, in rule order.

        Pattern rules are labelled by their pattern source, keyword rules by
        their keywords joined with ", ". Labels are not deduplicated.
        """

        normalized = self.normalize(text)
        return [entry.label for entry in self._compiled if entry.matches(normalized)]


def build_matcher(rules: Iterable[Rule], fold_diacritics: bool = True, version: int = 0) -> Matcher:
    """Validate and compile ``rules`` into a Matcher.

    The build is all-or-nothing: the first invalid rule raises ValidationError
    and no matcher is produced.
    """

    compiled = [
        _compile_rule(rule, index, fold_diacritics) for index, rule in enumerate(rules)
    ]
    return Matcher(compiled, fold_diacritics=fold_diacritics, version=version)
