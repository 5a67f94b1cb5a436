from .engine import (
    Detection,
    EmbeddingProvider,
    DegradedProvider,
    FaceRecognitionProvider,
    DeepFaceProvider,
    load_embedding_provider,
)

__all__ = [
    'Detection',
    'EmbeddingProvider',
    'DegradedProvider',
    'FaceRecognitionProvider',
    'DeepFaceProvider',
    'load_embedding_provider',
]
