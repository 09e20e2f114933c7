"""Wine Terroir - reconciles free-text wine provenance against a canonical taxonomy."""

__version__ = "0.1.0"
