"""Keep a local Markdown vault and a remote design-document store in sync."""

__version__ = "0.3.0"
