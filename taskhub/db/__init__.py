# File: taskhub/db/__init__.py
"""
Database package for TaskHub: models, engine and session handling.
"""
