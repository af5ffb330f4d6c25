"""Spotify integration modules."""

from spotify.client import SpotifyCatalogClient

__all__ = ["SpotifyCatalogClient"]
