"""HTTP API and service entry points."""
