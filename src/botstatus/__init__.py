"""botstatus - background-refreshed health snapshot served over HTTP."""

__version__ = "0.1.0"
