"""Conversation models and checkpoint storage."""
