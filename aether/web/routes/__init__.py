"""Aether web route modules.

Each module exports a `router` (APIRouter instance) included by aether.web.app.
Shared dependencies live in aether.web.dependencies, shared models in
aether.web.models.
"""

from aether.web.routes import admin, gaps, health, kpis, uploads

__all__ = ["admin", "gaps", "health", "kpis", "uploads"]
