"""
Place discovery core.

Responsibilities:
- Validate filter sets and key them for caching and pooling.
- Widen the search radius until enough candidates are gathered.
- Relax mood and budget constraints when too few candidates survive.
- Hand out picks from per-filter pools without repeating places.
"""
