"""remsync: mirror a remote document store into a local directory."""

__version__ = "0.1.0"
