"""Delta pprof profiles, application keys with tags, tag queries and upload job types."""

__version__ = "0.1.0"