"""Command-line interface for SubsetFlow."""
