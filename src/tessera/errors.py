"""Exception hierarchy shared by the repositories, the indexer, and the MCP layer.

The concrete errors also inherit the builtin exception callers would
naturally catch: a missing item is a ``KeyError``, a rejected request is a
``ValueError``. Code written against the builtins keeps working.
"""

from __future__ import annotations

from pathlib import Path


class TesseraError(Exception):
    """Base class for all tessera errors."""


class NotFoundError(TesseraError, KeyError):
    """An item, type, tag, status, or file does not exist."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message.
        return self.message


class InvalidRequestError(TesseraError, ValueError):
    """Validation or business-rule violation, raised before any side effect.

    ``problems`` lists every offending field or reference, so a caller can fix
    all of them in one pass.
    """

    def __init__(self, message: str, *, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.problems = list(problems) if problems else [message]

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_problems(cls, problems: list[str], *, summary: str = "Invalid request") -> InvalidRequestError:
        if len(problems) == 1:
            return cls(problems[0], problems=problems)
        return cls(f"{summary}: " + "; ".join(problems), problems=problems)


class ConsistencyError(TesseraError, RuntimeError):
    """A markdown file and its index rows diverged and could not be reconciled.

    Carries enough context to repair by hand, or via ``TesseraDB.rebuild_index()``.
    """

    def __init__(self, message: str, *, item_key: str | None = None, path: Path | None = None) -> None:
        super().__init__(message)
        self.item_key = item_key
        self.path = path


class FrontmatterError(TesseraError, ValueError):
    """A metadata block is present but corrupt."""


class IndexerError(TesseraError):
    """Base class for code-index failures."""


class NotAGitRepositoryError(IndexerError):
    """The project root is not inside a git work tree (or git is unavailable)."""


class IndexMissingError(IndexerError):
    """A query ran before anything was indexed."""
