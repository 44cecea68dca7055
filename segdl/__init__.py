"""
segdl - a resumable, concurrent, multi-segment downloader.
"""

__version__ = "0.3.0"
