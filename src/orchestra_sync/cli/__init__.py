"""Command line interface for Orchestra sync."""
