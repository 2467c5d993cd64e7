"""Custom exception classes for the packager."""


class PackagerException(Exception):
    """
    Base exception class for all packager errors.
    """
    pass


class InvalidPathError(PackagerException):
    """
    Raised when a relative path is absolute or escapes the upload root.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"Invalid path '{path}': {reason}")
        self.path = path
        self.reason = reason


class InvalidManifestError(PackagerException):
    """
    Raised when a manifest entry is malformed (unknown type, bad chunk count).
    """
    pass


class InvalidChunkError(PackagerException):
    """
    Raised when a chunk index falls outside [0, total_chunks).
    """
    pass


class UnknownUploadError(PackagerException):
    """
    Raised when a token has no staging namespace (never begun, or already finalized).
    """
    pass


class UploadAlreadyFinalizedError(PackagerException):
    """
    Raised when finalize is attempted for a token that already has a package.
    """
    pass


class MissingChunkError(PackagerException):
    """
    Raised when a declared chunk has no data in the chunk store.
    """

    def __init__(self, path: str, index: int):
        super().__init__(f"Missing chunk {index} of '{path}'")
        self.path = path
        self.index = index


class ArchiveError(PackagerException):
    """
    Base class for failures while building an archive.
    """
    pass


class ArchiveCreateError(ArchiveError):
    """
    Raised when the target archive cannot be created or opened.
    """
    pass


class ArchiveEntryError(ArchiveError):
    """
    Raised when an entry cannot be written into the archive.
    """

    def __init__(self, path: str, cause: Exception):
        super().__init__(f"Failed to add archive entry '{path}': {cause}")
        self.path = path


class ArchiveCloseError(ArchiveError):
    """
    Raised when the archive cannot be finalized and closed.
    """
    pass


class ArchiveExistsError(ArchiveError):
    """
    Raised when an archive with the target name was already published.
    """
    pass


class PackageGoneError(PackagerException):
    """
    Base class for packages that cannot be served. Callers outside the
    service layer must not distinguish the subclasses.
    """
    pass


class PackageNotFoundError(PackageGoneError):
    """
    Raised when no package exists for a token.
    """
    pass


class PackageExpiredError(PackageGoneError):
    """
    Raised when a package exists but its expiry time has passed.
    """
    pass


class StorageIOError(PackagerException):
    """
    Raised when an underlying filesystem or database operation fails.
    """
    pass
