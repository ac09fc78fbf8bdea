"""Leaf helpers: hashing, rate limiting, logging."""
