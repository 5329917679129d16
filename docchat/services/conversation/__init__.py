from docchat.services.conversation.service import ChatSessionService

__all__ = ["ChatSessionService"]
