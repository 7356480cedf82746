# File: taskhub/api/__init__.py
"""
API package for TaskHub.

This package contains the HTTP layer: endpoints, request dependencies and
routing configuration.
"""

from taskhub.api.api import api_router
