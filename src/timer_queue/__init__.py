"""Queue time entries and submit them to a remote timer service in capped chunks."""

__version__ = "0.3.0"
