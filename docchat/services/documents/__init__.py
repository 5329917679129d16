from docchat.services.documents.service import DocumentService

__all__ = ["DocumentService"]
