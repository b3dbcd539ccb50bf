"""
Coaching page rendering for blocked-but-allowed requests.
"""

from .page import display_name, render_coaching_page

__all__ = ["display_name", "render_coaching_page"]
