"""Client-side building blocks for the EdgeDB binary protocol: transactions, retries, reconnection, headers and optional values."""

__version__ = "0.1.0"