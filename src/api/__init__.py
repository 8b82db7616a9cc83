"""
FastAPI ranking service.

Provides REST API for:
- POST /events/{comparison,signal,boost} - Event ingestion
- POST /selection/next - Next pair or single item to show
- GET /scores/{item_id} - Published scores
- /admin/* - Item registration, recompute overrides, pipeline status
- GET /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
