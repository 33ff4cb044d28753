"""Place discovery service: cached, radius-expanding, filter-relaxing recommendations."""
