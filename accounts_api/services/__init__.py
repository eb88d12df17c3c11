"""
High-level use cases for the accounts backend.

Each service orchestrates the repository and external adapters (mail,
payment provider) to implement business rules such as registration, password
reset or subscription reconciliation. Routers call these services instead of
touching the database directly.
"""
