"""Application services (conversation analytics)."""
from handsfree.services.analytics import ConversationAnalytics

__all__ = ["ConversationAnalytics"]
