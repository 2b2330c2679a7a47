"""Heuristic classification of ``nz_plan`` output.

The retrieval tool has no structured success signal: it happily exits 0
while printing a notice that the ``.pln`` file could not be found. The
validator therefore judges the captured text itself. A capture is accepted
when it carries none of the known failure signatures and has enough
"meaningful" lines, i.e. lines that are not system notices or error banners.

This is best-effort. A valid verdict means the output looks like a plan,
not that the plan is correct.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Pattern, Sequence

from .schema import ProcessStatus, RejectionKind, RejectionReason, RetrievalAttempt, Verdict

DEFAULT_MIN_CONTENT_LINES = 5


@dataclass(frozen=True, slots=True)
class SignatureRule:
    """Named regular expression that marks a capture as an error report."""

    label: str
    pattern: Pattern[str]

    @classmethod
    def compile(cls, label: str, expression: str) -> "SignatureRule":
        return cls(label=label, pattern=re.compile(expression))

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


DEFAULT_SIGNATURES: tuple[SignatureRule, ...] = (
    SignatureRule.compile(
        "plan file not accessible",
        r"This script cannot find/access the requested.*\.pln file",
    ),
    SignatureRule.compile("plan file access failed", r"NOTICE:.*Trying to access"),
    SignatureRule.compile("tool suggested archive mode", r"nz_plan -tar"),
    SignatureRule.compile("general error detected", r"ERROR|FAILED|not found|No such file"),
)

DEFAULT_NOISE_PREFIXES: tuple[str, ...] = ("NOTICE", "ERROR", "This script")


class ContentValidator:
    """Classify captured text as a plan artifact or as disguised error output."""

    def __init__(
        self,
        *,
        signatures: Sequence[SignatureRule] = DEFAULT_SIGNATURES,
        noise_prefixes: Iterable[str] = DEFAULT_NOISE_PREFIXES,
        min_content_lines: int = DEFAULT_MIN_CONTENT_LINES,
    ) -> None:
        if min_content_lines < 0:
            raise ValueError("min_content_lines must be non-negative")
        self.signatures = tuple(signatures)
        self.noise_prefixes = tuple(noise_prefixes)
        self.min_content_lines = min_content_lines

    def matched_signatures(self, text: str) -> list[SignatureRule]:
        return [rule for rule in self.signatures if rule.matches(text)]

    def meaningful_lines(self, text: str) -> int:
        """Count non-blank lines that do not start with a noise prefix."""
        count = 0
        for line in text.splitlines():
            if not line.strip():
                continue
            if line.startswith(self.noise_prefixes):
                continue
            count += 1
        return count

    def classify(self, text: str) -> Verdict:
        matched = self.matched_signatures(text)
        if matched:
            return Verdict.invalid(
                *(RejectionReason(RejectionKind.ERROR_SIGNATURE, detail=rule.label) for rule in matched)
            )

        count = self.meaningful_lines(text)
        if count < self.min_content_lines:
            return Verdict.invalid(RejectionReason(RejectionKind.INSUFFICIENT_CONTENT, count=count))

        return Verdict.valid()

    def judge(self, attempt: RetrievalAttempt) -> Verdict:
        """Classify an attempt's text, then add any process-level rejection.

        A clean exit status never makes a capture valid on its own; a timed
        out or unlaunchable tool always makes it invalid.
        """
        verdict = self.classify(attempt.output)
        if attempt.status is ProcessStatus.TIMED_OUT:
            reason = RejectionReason(RejectionKind.TIMED_OUT, detail=attempt.error or "")
        elif attempt.status is ProcessStatus.LAUNCH_FAILED:
            reason = RejectionReason(RejectionKind.TOOL_INVOCATION_FAILED, detail=attempt.error or "")
        else:
            return verdict
        if verdict.is_valid:
            return Verdict.invalid(reason)
        return verdict.with_reasons(reason)


def classify(text: str) -> Verdict:
    """Classify ``text`` with the default rule set."""
    return ContentValidator().classify(text)


__all__ = [
    "ContentValidator",
    "DEFAULT_MIN_CONTENT_LINES",
    "DEFAULT_NOISE_PREFIXES",
    "DEFAULT_SIGNATURES",
    "SignatureRule",
    "classify",
]
