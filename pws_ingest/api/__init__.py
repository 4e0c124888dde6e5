"""HTTP surface: health, status history, manual fetch and read-back."""
