from __future__ import annotations

from typing import Iterable, Optional


class MplError(Exception):
    """
    Base for everything the compiler raises about a script.
    line/statement/token point at the offending input when known.
    """

    def __init__(
        self,
        message: str,
        *,
        line: Optional[int] = None,
        statement: Optional[str] = None,
        token: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.statement = statement
        self.token = token

    def __str__(self) -> str:
        if self.line is not None:
            return f"Line {self.line}: {self.message}"
        return self.message


class MplSyntaxError(MplError):
    pass


class DuplicateNameError(MplSyntaxError):
    pass


class UnknownBoneError(MplError):
    pass


class UnknownActionError(MplError):
    pass


class UnknownDirectionError(MplError):
    pass


class DegreeRangeError(MplError):
    pass


class TimelineOrderError(MplError):
    pass


class UnresolvedReferenceError(MplError):
    pass


class PoseConflictError(MplError):
    pass


class InternalInvariantError(MplError):
    # corrupted static rule table; never caused by user input
    pass


class CompileError(MplError):
    """
    Whole-input rejection: carries every statement-level error found in one script.
    """

    def __init__(self, errors: Iterable[MplError]) -> None:
        self.errors: list[MplError] = list(errors)
        n = len(self.errors)
        head = str(self.errors[0]) if self.errors else "unknown error"
        msg = head if n <= 1 else f"{head} (and {n - 1} more)"
        super().__init__(msg)

    def __str__(self) -> str:
        return self.message

    def report(self) -> str:
        return "\n".join(f"{type(e).__name__}: {e}" for e in self.errors)
