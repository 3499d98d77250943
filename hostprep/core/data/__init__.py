"""
Static data — tool recipes. Pure data, no logic.
"""

from hostprep.core.data.recipes import TOOL_RECIPES, TOOL_ORDER  # noqa: F401
