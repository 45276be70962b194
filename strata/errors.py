class StrataError(Exception):
    """Base class for strata-specific errors."""


# Storage related
class StorageError(StrataError, OSError):
    pass


class ObjectNotFound(StorageError):
    pass


class ShortReadError(StorageError, EOFError):
    pass


# Encoding/consistency
class FormatError(StrataError, ValueError):
    pass


class SizeMismatchError(FormatError):
    pass


class UnsupportedObjectType(StrataError):
    def __init__(self, type_name: bytes):
        super().__init__(f"unsupported object type: {type_name!r}")
        self.type_name = type_name
