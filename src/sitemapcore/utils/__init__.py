"""Utility modules for sitemapcore."""

from .urls import generate_url_id, is_valid_url, title_from_url, truncate_description

__all__ = ["generate_url_id", "is_valid_url", "title_from_url", "truncate_description"]
