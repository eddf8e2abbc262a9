class FilestreamError(Exception):
    """Base class for filestream-specific errors."""


# Construction
class ConstructionError(FilestreamError):
    pass


class UnsupportedAlgorithm(ConstructionError):
    pass


class InvalidCompressionLevel(ConstructionError):
    pass


class HeaderWriteError(ConstructionError):
    pass


# API misuse
class SequencingError(FilestreamError):
    pass


class StreamClosedError(SequencingError):
    pass


class WriteInterrupted(FilestreamError):
    """A writer was closed while an entry was still open; the output is corrupt."""


# Wire format
class FormatError(FilestreamError):
    pass


class MalformedHeaderError(FormatError):
    pass


class MalformedChunkError(FormatError):
    pass


class IllegalPathError(FormatError):
    pass


class CorruptStreamError(FormatError):
    pass


class UnsafePathError(FormatError):
    pass


class VersionError(FilestreamError):
    pass


class UnsupportedVersionError(VersionError):
    pass


class TruncationError(FilestreamError):
    pass


class UnexpectedEndOfStream(TruncationError):
    pass


class IntegrityError(FilestreamError):
    pass


class NonEmptyDirectoryBodyError(IntegrityError):
    pass


class ExcessDataError(IntegrityError):
    pass


# Filesystem helpers
class CollaboratorError(FilestreamError):
    pass


class UnsupportedFileTypeError(CollaboratorError):
    pass


class OwnershipUnsupportedError(CollaboratorError):
    pass


class OwnershipLookupError(CollaboratorError):
    pass
