"""
Liga fantasy backend.
HTTP edge, realtime presence channel and structured logging.
"""
__version__ = "0.1.0"
