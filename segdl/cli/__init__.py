"""
Command-line interface: the Typer application, console formatters and the
live progress display.
"""
