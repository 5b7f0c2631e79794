"""Statistics and daily summary reports."""
