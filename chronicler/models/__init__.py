"""Domain and API data models."""
