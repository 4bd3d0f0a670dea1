"""
Exception hierarchy shared by the resurrection tools.
"""


class ResurrectionError(Exception):
    """Base exception for build resurrection operations."""

    pass


class ProcessExecutionError(ResurrectionError):
    """Raised when a subprocess cannot be started at all."""

    pass
