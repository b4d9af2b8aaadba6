"""HTTP API for the access governance engine."""
