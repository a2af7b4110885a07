"""HTTP trigger surface for the mailtriage batch jobs.

Provides a small FastAPI app for:
- Retrying failed analyses
- Reassessing priorities (one user or all users)
- Health checks
"""

from mailtriage.web.app import create_app

__all__ = ["create_app"]
