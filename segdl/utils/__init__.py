"""
Shared helpers: path building, formatting, item selection, cancellation
and structured event logging.
"""
