"""Core services shared across the import pipeline."""
