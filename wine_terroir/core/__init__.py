"""Core domain models, enums and matching primitives."""
