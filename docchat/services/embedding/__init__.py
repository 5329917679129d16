from docchat.services.embedding.embedder import Embedder

__all__ = ["Embedder"]
