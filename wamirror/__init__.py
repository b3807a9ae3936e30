"""
wamirror - a local, searchable mirror of WhatsApp conversation history.
"""

__version__ = "0.1.0"
