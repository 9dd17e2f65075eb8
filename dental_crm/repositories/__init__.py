"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each domain area (profiles,
clients, visits, orders, dispatch, activity) over a shared AsyncSession.
"""
