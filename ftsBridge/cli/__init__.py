"""Command line interface for ftsBridge."""
