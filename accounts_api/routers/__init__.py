"""
FastAPI routers grouped by domain (auth, user, admin, payment).

Each module exposes an APIRouter included by ``accounts_api.app.create_app``.
Routers stay thin: they parse input and delegate to services.
"""
