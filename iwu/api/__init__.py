"""REST API (development only; the public site is a static export)."""
