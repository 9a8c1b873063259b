"""
Support Relay backend: chat widget with AI answers and human handoff.
"""

__version__ = "1.0.0"
__author__ = "Support Relay Team"

# Application metadata
APP_NAME = "Support Relay"
APP_DESCRIPTION = (
    "Chat widget backend routing visitor messages to an AI assistant "
    "or to human agents in a messaging platform thread"
)

__all__ = [
    "APP_NAME",
    "APP_DESCRIPTION",
    "__version__",
]
