"""Cases, targets and evidence records."""
