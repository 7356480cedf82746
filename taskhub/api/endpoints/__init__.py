# File: taskhub/api/endpoints/__init__.py
"""
API endpoints package for TaskHub.
"""

from taskhub.api.endpoints import tasks
