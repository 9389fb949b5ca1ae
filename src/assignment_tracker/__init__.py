"""
Assignment Tracker package.

A FastAPI service with a live, subscription-driven view over a document store
of school assignments. The ASGI app lives in assignment_tracker.main.
"""

__version__ = "0.1.0"
