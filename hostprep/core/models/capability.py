"""
Capability model — one thing the engine can detect and establish.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from hostprep.core.models.source import Directive, SourceLayout

CapabilityKind = Literal["binary", "directive", "service"]


class Capability(BaseModel):
    """A named, immutable condition the Probe can evaluate.

    - ``binary``: ``target`` is an executable name looked up on PATH.
    - ``directive``: ``directive`` must be declared with its value
      across ``layout``.
    - ``service``: ``target`` is a service reported active by the
      init system.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: CapabilityKind
    target: str = ""
    directive: Directive | None = None
    layout: SourceLayout | None = None

    @classmethod
    def binary(cls, executable: str) -> Capability:
        return cls(name=f"binary:{executable}", kind="binary", target=executable)

    @classmethod
    def service(cls, service: str) -> Capability:
        return cls(name=f"service:{service}", kind="service", target=service)

    @classmethod
    def declared(cls, directive: Directive, layout: SourceLayout) -> Capability:
        return cls(
            name=f"directive:{layout.service}:{directive.name}",
            kind="directive",
            target=directive.name,
            directive=directive,
            layout=layout,
        )
