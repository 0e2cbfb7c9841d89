"""akit - install curated agent content bundles for AI coding tools."""

__version__ = "0.1.0"
