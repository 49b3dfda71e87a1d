"""supertx - plan, quote and execute multi-chain supertransactions."""

__version__ = "0.1.0"
