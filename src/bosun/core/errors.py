"""Exception hierarchy for bosun

Every error is terminal for the invocation. Components raise, the CLI reports
a single line and exits with status 1.
"""

from typing import Optional


class BosunError(Exception):
    """Base class for all bosun errors"""


class ConfigError(BosunError):
    """Configuration file or variable could not be understood"""


class InputError(BosunError):
    """Malformed or unsupported image reference"""


class UnsupportedProtocolError(InputError):
    """Reference names a protocol other than docker:// or shub://"""

    def __init__(self, protocol: str):
        self.protocol = protocol
        super().__init__(f"Unsupported protocol: {protocol}:// (use docker:// or shub://)")


class InvalidReferenceError(InputError):
    """Reference is empty or cannot be split into repository and tag"""


class EngineError(BosunError):
    """No usable container engine"""


class EngineNotFoundError(EngineError):
    """Requested engine is unknown or its binary is not on PATH"""


class NoEngineDetectedError(EngineError):
    """Neither singularity nor docker could be found"""


class FetchError(BosunError):
    """Fetching an image failed"""


class PullFailedError(FetchError):
    """Engine pull exited with a non-zero status"""

    def __init__(self, reference: str, exit_status: int, detail: Optional[str] = None):
        self.reference = reference
        self.exit_status = exit_status
        message = f"Failed to pull {reference} (exit status {exit_status})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UnimplementedError(BosunError):
    """Command is deliberately not implemented"""
