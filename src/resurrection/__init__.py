"""
Build resurrection: configuration, the end-to-end pipeline and the CLI.
"""

from .config import ResurrectionConfigError, ResurrectionSettings, SettingsManager
from .core import ResurrectionPipeline, ResurrectionReport
from .output_formatter import ResurrectionFormatter

__all__ = [
    "ResurrectionConfigError",
    "ResurrectionSettings",
    "SettingsManager",
    "ResurrectionPipeline",
    "ResurrectionReport",
    "ResurrectionFormatter",
]
