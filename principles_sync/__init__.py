"""principles-sync — keep local coding principles and tool permissions in step with a shared repo."""

__version__ = "0.3.0"
