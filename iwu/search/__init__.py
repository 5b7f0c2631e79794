"""Search, filter, sort and pagination over in-memory lists."""
