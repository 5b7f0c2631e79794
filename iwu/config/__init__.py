"""Runtime settings and secrets."""
