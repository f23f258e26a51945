"""cidvault — file-metadata ledger over content-addressed storage."""

__version__ = "0.1.0"
