"""
API routes module initialization.
"""
from . import chat, slack, payments, health

__all__ = ["chat", "slack", "payments", "health"]
