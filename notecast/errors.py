from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class UploadError(RuntimeError):
    """Raised when local media cannot be read or a hosting server rejects an upload."""


class DownloadError(RuntimeError):
    """Raised when uploaded media cannot be fetched back from its remote URL."""


class DescriptorError(RuntimeError):
    """Raised when hashing or metadata extraction of media bytes fails."""


class RecordError(RuntimeError):
    """Raised when a record or record file cannot be built or parsed."""
