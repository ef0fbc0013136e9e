from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from ..log_writer import logger

ISSUE_KINDS = ("parse", "resolution", "packing", "io")


class BlockForgeError(Exception):
    """Base class for asset compilation failures."""


class AssetParseError(BlockForgeError, ValueError):
    """Malformed JSON or a missing/invalid required field."""


class ResolutionError(BlockForgeError, LookupError):
    """A parent model or texture alias could not be resolved."""


class CircularParentError(ResolutionError):
    pass


class AssetIOError(BlockForgeError, OSError):
    """A source asset exists but could not be read."""


@dataclass(frozen=True)
class Issue:
    kind: str
    subject: str
    message: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.subject}: {self.message}"


@dataclass
class CompileReport:
    """Non-fatal problems gathered during one compilation run."""

    issues: List[Issue] = field(default_factory=list)

    def add(self, kind: str, subject: str, message: str) -> Issue:
        if kind not in ISSUE_KINDS:
            raise ValueError(f"Unknown issue kind: {kind}")
        issue = Issue(kind, subject, str(message))
        self.issues.append(issue)
        logger(str(issue), level="warning")
        return issue

    def of_kind(self, kind: str) -> List[Issue]:
        return [issue for issue in self.issues if issue.kind == kind]

    def counts(self) -> Dict[str, int]:
        totals = {kind: 0 for kind in ISSUE_KINDS}
        for issue in self.issues:
            totals[issue.kind] += 1
        return totals


def issue_kind(exc: BaseException) -> str:
    if isinstance(exc, ResolutionError):
        return "resolution"
    if isinstance(exc, AssetParseError):
        return "parse"
    return "io"
