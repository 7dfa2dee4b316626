"""Command line interface for lanwatch."""
