"""threadbot — checkpointed LangGraph agent runtime with retrieval."""

__version__ = "0.1.0"
