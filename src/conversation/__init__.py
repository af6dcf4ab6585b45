from .cache import ConversationCache, ConversationEntry, ConversationRecord, get_conversation_cache

__all__ = ["ConversationCache", "ConversationEntry", "ConversationRecord", "get_conversation_cache"]
