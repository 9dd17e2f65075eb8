"""
Core application utilities.

This package provides:
- Application-level settings (separate from DB settings)
- Logging with correlation ids
- JWT/password helpers, permission resolution and FastAPI dependencies
- Pure helpers for RUT validation, geodesic distance and the visit timer
"""
