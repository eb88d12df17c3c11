"""
Accounts backend: user accounts, JWT sessions, password reset and Stripe
subscription billing.

The ASGI application is built by ``accounts_api.app.create_app``.
"""
