"""CLI commands for bootlayer."""
