"""
API routes module.

FastAPI application factory, routers and dependency providers.
"""
