"""
Core utilities shared across the accounts backend.

Configuration, error taxonomy, password hashing, session tokens, rate
limiting, the mail adapter and background jobs live here. Services depend on
these primitives instead of reading the environment or FastAPI directly.
"""
