"""
HTTP API for the widget, the messaging platform webhook and payments.
"""

from .routes import chat, slack, payments, health

__all__ = ["chat", "slack", "payments", "health"]
