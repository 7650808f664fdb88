"""Command line interface for chainspine (typer + rich)."""
