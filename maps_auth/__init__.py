"""Azure Maps authentication samples: key, anonymous and enterprise tiers."""

__version__ = "1.0.0"
