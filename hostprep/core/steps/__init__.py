"""
Concrete provisioning steps and the catalog that orders them.
"""

from hostprep.core.steps.catalog import build_steps  # noqa: F401
from hostprep.core.steps.directive import DirectiveStep, ssh_password_check  # noqa: F401
from hostprep.core.steps.package import Hook, PackageStep  # noqa: F401
from hostprep.core.steps.repository import RepositoryStep  # noqa: F401
