"""Database connectors for SubsetFlow."""
