"""
Services built on top of the store: ingestion, identity resolution,
sync scheduling, messaging, search and export.
"""
