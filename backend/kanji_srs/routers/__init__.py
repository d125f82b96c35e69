"""API routers."""

from kanji_srs.routers import review

__all__ = ["review"]
