"""Keep a small, stable inbox of the GitHub notifications you need to act on."""
