from .gallery import Gallery, GallerySnapshot, EMPTY_SNAPSHOT
from .matcher import (
    Matcher,
    MatchResult,
    FACE_MATCH_THRESHOLD,
    NO_MATCH_DISTANCE,
    UNKNOWN,
)

__all__ = [
    'Gallery',
    'GallerySnapshot',
    'EMPTY_SNAPSHOT',
    'Matcher',
    'MatchResult',
    'FACE_MATCH_THRESHOLD',
    'NO_MATCH_DISTANCE',
    'UNKNOWN',
]
