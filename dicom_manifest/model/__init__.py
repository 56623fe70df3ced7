"""Content tree, evidence and validation result models."""
