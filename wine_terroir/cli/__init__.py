"""CLI module for Wine Terroir."""
