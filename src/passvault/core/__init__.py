"""Core package of PassVault."""
