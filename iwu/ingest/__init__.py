"""Monitoring pipeline: scrapers, change detection, relevance, scan runs."""
