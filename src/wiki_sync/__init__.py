"""AI-assisted documentation sync: keeps a wiki in step with a source repository."""

__version__ = "0.1.0"
