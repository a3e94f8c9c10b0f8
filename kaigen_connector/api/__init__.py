"""REST API consumed by Kaigen."""
