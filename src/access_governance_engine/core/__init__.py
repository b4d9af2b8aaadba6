"""Core domain: models, protocols, scoring and the governance components."""
