"""Core configuration, shared types and exceptions."""
