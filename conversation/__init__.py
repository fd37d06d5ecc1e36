from .chat_service import ChatService, ChatTurnResult
from .search import SearchProvider, build_search_context, should_search
from .store import ConversationStore, InMemoryConversationStore

__all__ = [
    "ChatService",
    "ChatTurnResult",
    "ConversationStore",
    "InMemoryConversationStore",
    "SearchProvider",
    "should_search",
    "build_search_context",
]
