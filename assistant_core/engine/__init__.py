from assistant_core.engine.conversation_engine import ConversationEngine, EngineSnapshot

__all__ = ["ConversationEngine", "EngineSnapshot"]
