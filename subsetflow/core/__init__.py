"""Core orchestration for SubsetFlow runs."""
