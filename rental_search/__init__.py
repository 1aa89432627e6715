"""
rental_search - search suggestion and results caching engine for rental listings
"""

from rental_search.engine import SearchEngine, build_search_engine

__version__ = "1.0.0"

__all__ = ["SearchEngine", "build_search_engine", "__version__"]
