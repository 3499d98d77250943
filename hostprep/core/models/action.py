"""
Receipt model — what an adapter hands back instead of raising.

Adapters perform side effects on the host (package manager, init
system, git, filesystem) and report the outcome as a Receipt. The
steps decide what a failed receipt means for the run.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ReceiptStatus = Literal["ok", "skipped", "failed"]


class Receipt(BaseModel):
    """Result of one adapter operation.

    ``operation`` is a short label such as ``"install git"`` or
    ``"reload ssh"``. A skipped receipt counts as ok: there was
    nothing to do.
    """

    adapter: str
    operation: str
    status: ReceiptStatus = "ok"
    duration_ms: int = 0
    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, *, adapter: str, operation: str, output: str = "", **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, output=output, **kwargs)

    @classmethod
    def failure(cls, *, adapter: str, operation: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, operation=operation, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, *, adapter: str, operation: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Nothing needed doing; ``reason`` goes to ``output``."""
        return cls(adapter=adapter, operation=operation, status="skipped", output=reason, **kwargs)
