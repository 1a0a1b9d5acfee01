"""
Errors
Failure conditions raised inside the storage core.

The gateway converts recoverable ones (I/O, codec) into boolean or default
results. UnsupportedCipherKind is a programming error and always propagates.
"""


class StorageError(Exception):
    """Base class for every error raised by cryptstore."""


class PathResolutionError(StorageError, FileNotFoundError):
    """The resolved path (or its directory) does not exist on load."""


class CodecError(StorageError):
    """A payload could not be converted to or from bytes."""


class EncodeError(CodecError):
    """A typed value could not be serialized."""


class DecodeError(CodecError):
    """Stored bytes could not be turned back into the requested value."""


class UnsupportedCipherKind(StorageError, NotImplementedError):
    """The dispatch table has no transform for the given cipher kind."""

    def __init__(self, kind):
        super().__init__(f"No cipher transform implemented for kind: {kind!r}")
        self.kind = kind
