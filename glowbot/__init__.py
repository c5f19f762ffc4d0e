"""GlowBot scheduler — recurring content-generation jobs."""

__version__ = "0.4.0"
