#!/usr/bin/env python3
"""
Error types raised by the mail backup modules.
"""

from typing import Optional


class MailBackupError(Exception):
    """Base class for all mail backup errors"""


class ConfigError(MailBackupError):
    """Missing or invalid configuration"""


class NotInitializedError(MailBackupError):
    """Session or client used before initialize()"""


class AuthError(MailBackupError):
    """Device code flow failed or the token was rejected"""


class TransportError(MailBackupError):
    """Network failure or unexpected Graph API response"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    """Requested message no longer exists (deleted or moved)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class FilesystemError(MailBackupError):
    """Directory creation or file write failed"""


class PageConsumedError(MailBackupError):
    """A message page was advanced more than once"""
