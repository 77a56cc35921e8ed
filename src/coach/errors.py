"""Domain-specific exceptions for the call coach.

These exceptions are safe to import from API layers without pulling in httpx.
"""

from __future__ import annotations


class CoachError(Exception):
    default_detail: str = "Call coach error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class CallControlError(CoachError):
    """A Telnyx Call Control action failed (non-2xx, timeout or transport)."""

    default_detail = "Call control action failed."

    def __init__(
        self,
        action: str,
        path: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.action = action
        self.path = path
        self.status_code = status_code
        super().__init__(
            f"{action} {path} failed"
            + (f" with HTTP {status_code}" if status_code is not None else "")
            + (f": {detail}" if detail else "")
        )


class InvalidStageTransition(CoachError):
    default_detail = "Call session stages only move forward."
