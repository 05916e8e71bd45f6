"""Custom exceptions for Qloud application"""


class QloudError(Exception):
    """Base exception for Qloud application"""

    pass


class ConfigurationError(QloudError):
    """Configuration-related errors"""

    pass


class SecurityError(QloudError):
    """Security-related errors"""

    pass


class ConfinementError(SecurityError):
    """A client path resolved outside of the storage root"""

    pass


class FileOperationError(QloudError):
    """File operation errors"""

    pass


class EntryNotFoundError(FileOperationError):
    """The target path does not exist"""

    pass


class NotDirectoryError(FileOperationError):
    """A directory operation was applied to something else"""

    pass


class NotFileError(FileOperationError):
    """A file operation was applied to something else"""

    pass


class NameCollisionError(FileOperationError):
    """The destination name is already taken"""

    pass


class StorageError(FileOperationError):
    """Underlying filesystem failure"""

    pass
