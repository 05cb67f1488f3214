"""wikidelta: incremental documentation sync driven by code change impact."""

__version__ = "0.3.0"
