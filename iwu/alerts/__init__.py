"""Alert list persistence and policy passes."""
