"""
Database seeding utilities for minimal reference data.

Seeds:
- Role/permission matrix (the built-in defaults, one row per role and code)
- Owner profile (when OWNER_EMAIL is configured), role admin
- A handful of demo clients around Santiago, owned by the owner

Usage:
  python -m dental_crm.db.run_migrations upgrade head
  python -m dental_crm.db.seed
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.permissions import DEFAULT_ROLE_PERMISSIONS, ROLE_ADMIN
from dental_crm.core.settings import get_app_settings
from dental_crm.db.session import session_scope


# name, rut, address, comuna, lat, lng
DEMO_CLIENTS: List[Tuple[str, str, str, str, float, float]] = [
    ("Clínica Dental Providencia", "76086428-5", "Av. Providencia 1208", "Providencia", -33.4263, -70.6156),
    ("Centro Odontológico Ñuñoa", "77123456-9", "Irarrázaval 3450", "Ñuñoa", -33.4541, -70.5964),
    ("Laboratorio Dental Maipú", "78234567-2", "Av. Pajaritos 2100", "Maipú", -33.5097, -70.7575),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data. Every step is idempotent.
    """
    settings = get_app_settings()
    async with session_scope(commit=True) as session:
        await _seed_role_permissions(session)
        owner_id = await _ensure_owner(session, settings.owner_email)
        if owner_id is not None:
            await _seed_demo_clients(session, owner_id, settings.DEFAULT_CLIENT_ZONE)


async def _seed_role_permissions(session: AsyncSession) -> None:
    """Insert the default role matrix; existing rows are left alone."""
    for role, codes in DEFAULT_ROLE_PERMISSIONS.items():
        for code in codes:
            await session.execute(
                text(
                    """
                    INSERT INTO role_permissions (role, permission)
                    VALUES (:role, :perm)
                    ON CONFLICT ON CONSTRAINT uq_role_permissions_role_permission DO NOTHING
                    """
                ),
                {"role": role, "perm": code},
            )


async def _ensure_owner(session: AsyncSession, owner_email: Optional[str]) -> Optional[UUID]:
    """
    Ensure an owner profile exists. It is created without a password, so the
    owner claims it by registering with the same e-mail.
    """
    if not owner_email:
        return None
    await session.execute(
        text(
            """
            INSERT INTO profiles (email, full_name, role, status)
            VALUES (:email, 'Owner', :role, 'active')
            ON CONFLICT ON CONSTRAINT uq_profiles_email DO NOTHING
            """
        ),
        {"email": owner_email, "role": ROLE_ADMIN},
    )
    res = await session.execute(text("SELECT id FROM profiles WHERE email = :email"), {"email": owner_email})
    row = res.first()
    if not row:
        raise RuntimeError("Failed to create or load owner profile")
    return row[0]


async def _seed_demo_clients(session: AsyncSession, owner_id: UUID, zone: str) -> None:
    for name, rut, address, comuna, lat, lng in DEMO_CLIENTS:
        await session.execute(
            text(
                """
                INSERT INTO clients (name, rut, address, comuna, zone, lat, lng, created_by)
                VALUES (:name, :rut, :address, :comuna, :zone, :lat, :lng, :owner)
                ON CONFLICT ON CONSTRAINT uq_clients_rut DO NOTHING
                """
            ),
            {
                "name": name,
                "rut": rut,
                "address": address,
                "comuna": comuna,
                "zone": zone,
                "lat": lat,
                "lng": lng,
                "owner": str(owner_id),
            },
        )


if __name__ == "__main__":
    asyncio.run(seed_all())
