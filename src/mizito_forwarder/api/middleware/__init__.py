"""API middleware — app token guard and request logging."""
