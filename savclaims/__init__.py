"""SAV claim workflow: claim forms, reliable uploads and submission."""

__version__ = "1.0.0"
