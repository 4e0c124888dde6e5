"""Response models for the HTTP surface."""
