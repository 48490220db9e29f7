"""Launch GUI-dependent programs, falling back to a virtual display."""

__version__ = "0.1.0"
