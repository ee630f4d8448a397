"""LangGraph turn state machine."""
