"""
Probe — is a capability already satisfied?

Side-effect-free. A missing binary, file or service is simply
"not satisfied", never an error.
"""

from __future__ import annotations

import logging
import shutil
from typing import Callable

from hostprep.adapters.base import Filesystem
from hostprep.adapters.services.systemd import SystemdAdapter
from hostprep.core.engine.locator import ConfigLocator
from hostprep.core.models.capability import Capability

logger = logging.getLogger(__name__)


class Probe:
    """Evaluates Capabilities against the host.

    Args:
        fs: Filesystem the directive sources live on.
        services: Service adapter (for ``service`` capabilities).
        which: PATH lookup, ``shutil.which`` by default.
    """

    def __init__(
        self,
        fs: Filesystem,
        services: SystemdAdapter | None = None,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self._locator = ConfigLocator(fs)
        self._services = services
        self._which = which

    @property
    def locator(self) -> ConfigLocator:
        return self._locator

    def satisfied(self, capability: Capability) -> bool:
        if capability.kind == "binary":
            found = self._which(capability.target) is not None
        elif capability.kind == "directive":
            found = self._directive_satisfied(capability)
        elif capability.kind == "service":
            found = self._services is not None and self._services.is_active(capability.target)
        else:
            found = False

        logger.debug("Probe %s → %s", capability.name, "satisfied" if found else "missing")
        return found

    def all_satisfied(self, capabilities: list[Capability]) -> bool:
        return all(self.satisfied(c) for c in capabilities)

    def _directive_satisfied(self, capability: Capability) -> bool:
        if capability.directive is None or capability.layout is None:
            return False
        try:
            return self._locator.is_enforced(
                capability.layout,
                capability.directive.name,
                capability.directive.value,
            )
        except (OSError, UnicodeError) as e:
            logger.warning("Cannot read configuration for %s: %s", capability.name, e)
            return False
