"""Household finance tracker package."""

__all__ = [
    "config",
    "errors",
    "logging_setup",
    "normalizer",
    "data_loader",
    "columns",
    "categorizer",
    "materializer",
    "importer",
    "analytics",
    "models",
    "db",
    "webapp",
    "cli",
]

__version__ = "0.1.0"
