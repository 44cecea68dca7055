"""
Core application engine for orchestrating the download process.

The `DownloadManager` acts as the high-level session coordinator: it resolves
URLs and hands each resolved item to the `StreamDispatcher`, which selects a
stream and drives its parts through the media layer.
"""
