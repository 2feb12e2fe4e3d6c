"""
Gateway for multi-turn conversations with the DuckDuckGo AI chat.
"""

__version__ = "1.0.0"
