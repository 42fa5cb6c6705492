"""Custom exceptions for the conversion engine."""


class ConversionError(Exception):
    """Base exception for all conversion errors."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


class SourceError(ConversionError):
    """Raised when the input cannot be read or holds no images."""

    pass


class PageProcessingError(ConversionError):
    """Raised when a single page cannot be decoded or filtered."""

    def __init__(self, message: str, page_id: int | None = None, *args, **kwargs):
        self.page_id = page_id
        super().__init__(message, *args, **kwargs)


class SizingError(ConversionError):
    """Raised when the size of a stored page cannot be determined."""

    def __init__(self, message: str, key: tuple[int, int] | None = None, *args, **kwargs):
        self.key = key
        super().__init__(message, *args, **kwargs)


class EmptyPartitionError(ConversionError):
    """Raised when there are no pages to put into volumes."""

    def __init__(self, message: str = "No pages to convert"):
        super().__init__(message)


class ContainerWriteError(ConversionError):
    """Raised when an output container cannot be written."""

    def __init__(self, message: str, path=None, *args, **kwargs):
        self.path = path
        super().__init__(message, *args, **kwargs)


class ConfigError(ConversionError):
    """Raised when the persisted configuration cannot be read or written."""

    def __init__(self, message: str, path=None, *args, **kwargs):
        self.path = path
        super().__init__(message, *args, **kwargs)
