"""Messaging webhook relay to conversational completion backends."""
