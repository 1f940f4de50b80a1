"""Cross-chain yield farming backend."""

__version__ = "1.0.0"
