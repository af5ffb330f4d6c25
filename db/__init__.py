"""Database helpers for smart-link storage."""
