"""
Router API Module
=================

Flask HTTP surface for the router daemon.
"""

from .app import create_app

__all__ = ["create_app"]
