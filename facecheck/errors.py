"""Exception hierarchy shared by the attendance core."""


class FaceCheckError(Exception):
    """Base class for errors raised by the attendance core."""


class StorageError(FaceCheckError):
    """Raised when the student directory or event store cannot be read or written."""


class GalleryError(FaceCheckError, ValueError):
    """Raised when a gallery rebuild receives malformed embeddings."""


class MatcherError(FaceCheckError, ValueError):
    """Raised when a query embedding cannot be compared with the gallery."""


class CameraError(FaceCheckError, RuntimeError):
    """Raised when the camera cannot be opened or stops delivering frames."""


class ProviderUnavailable(FaceCheckError):
    """Raised when a face model backend cannot be loaded."""


class RegistrationError(FaceCheckError, ValueError):
    """Raised when a student photo cannot be turned into a face descriptor."""


__all__ = [
    "FaceCheckError",
    "StorageError",
    "GalleryError",
    "MatcherError",
    "CameraError",
    "ProviderUnavailable",
    "RegistrationError",
]
