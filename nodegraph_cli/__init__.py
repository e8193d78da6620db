"""NodeGraph CLI: static file-level dependency graphs for JavaScript projects."""

__version__ = "0.3.0"
