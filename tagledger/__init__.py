"""tagledger - learned transaction categorization rules."""

__version__ = "0.1.0"
