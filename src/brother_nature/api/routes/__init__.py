"""API route modules, one router per area."""

from fastapi import FastAPI

from brother_nature.api.routes import auth, health, rewards, wallet


def register_routes(app: FastAPI) -> None:
    """Register all API routers with the FastAPI app."""
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(wallet.router)
    app.include_router(rewards.router)
