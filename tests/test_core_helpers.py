from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from dental_crm.core.geo import check_geofence, extract_comuna, haversine_km
from dental_crm.core.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    MANAGE_USERS,
    VIEW_METAS,
    VIEW_TEAM_STATS,
    AccessContext,
    resolve_permissions,
)
from dental_crm.core.rut import compute_check_digit, is_valid_rut, normalize_rut, rut_match_key
from dental_crm.core.visit_timer import visit_timer
from tests.conftest import make_profile


class TestRut:
    def test_normalize_strips_punctuation(self):
        assert normalize_rut("76.111.111-6") == "76111111-6"
        assert normalize_rut(" 12.345.678-k ") == "12345678-K"
        assert normalize_rut("12345678k") == "12345678-K"

    def test_normalize_short_values(self):
        assert normalize_rut("") == ""
        assert normalize_rut(None) == ""
        assert normalize_rut("7") == "7"

    def test_match_key(self):
        assert rut_match_key("76.111.111-6") == "761111116"
        assert rut_match_key("12345678-k") == "12345678K"
        assert rut_match_key(None) == ""

    def test_check_digit(self):
        assert compute_check_digit("12345678") == "5"
        assert compute_check_digit("76111111") == "6"
        assert is_valid_rut("12.345.678-5")
        assert not is_valid_rut("12.345.678-4")
        assert not is_valid_rut("abc")


class TestGeo:
    def test_one_degree_on_equator(self):
        assert haversine_km(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)

    def test_geofence_inside_and_outside(self):
        inside = check_geofence(-33.4489, -70.6693, -33.4490, -70.6694, radius_m=500)
        assert inside.within
        assert inside.distance_m < 50

        outside = check_geofence(-33.4489, -70.6693, -33.4200, -70.6000, radius_m=500)
        assert not outside.within
        assert outside.distance_km > 5

    def test_target_without_coordinates_is_unreachable(self):
        result = check_geofence(-33.4489, -70.6693, None, None)
        assert not result.within

    def test_comuna_from_postal_code(self):
        address = "Av. Providencia 2000, 7500000 Providencia, Región Metropolitana, Chile"
        assert extract_comuna(address) == "Providencia"

    def test_comuna_from_components(self):
        components = [
            {"types": ["route"], "long_name": "Calle Uno"},
            {"types": ["locality", "political"], "long_name": "Santiago"},
        ]
        assert extract_comuna("Calle Uno 123, Santiago, Chile", components) == "Santiago"
        assert extract_comuna(None, []) == ""


class TestVisitTimer:
    def test_remaining(self):
        start = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)
        state = visit_timer(start, now=start + timedelta(minutes=5), limit_minutes=20)
        assert state.remaining_seconds == 15 * 60
        assert not state.is_overtime
        assert state.display == "Restante: 15:00"

    def test_overtime(self):
        start = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)
        state = visit_timer(start, now=start + timedelta(minutes=25, seconds=7))
        assert state.is_overtime
        assert state.label == "05:07"
        assert state.display == "Excedido: +05:07"

    def test_naive_check_in_is_utc(self):
        start = datetime(2024, 5, 2, 10, 0)
        state = visit_timer(start, now=datetime(2024, 5, 2, 10, 1, tzinfo=timezone.utc))
        assert state.elapsed_seconds == 60


class TestPermissions:
    def test_defaults_when_matrix_empty(self):
        assert resolve_permissions("seller", None) == [VIEW_METAS]
        assert resolve_permissions(" Seller ", []) == [VIEW_METAS]
        assert resolve_permissions("unknown", None) == []

    def test_stored_codes_win(self):
        assert resolve_permissions("seller", ["IMPORT_CLIENTS"]) == ["IMPORT_CLIENTS"]

    def test_owner_always_admin(self):
        codes = resolve_permissions(
            "seller", ["VIEW_METAS"], email="Dueno@3dental.cl", owner_email="dueno@3dental.cl"
        )
        assert codes == DEFAULT_ROLE_PERMISSIONS["admin"]

    def test_access_context_impersonation(self):
        real = make_profile(role="manager", email="gerencia@3dental.cl")
        target = make_profile(role="seller")
        ctx = AccessContext(profile=target, real_profile=real, permissions=frozenset([VIEW_METAS]))
        assert ctx.is_impersonating
        assert ctx.effective_role == "seller"
        assert ctx.real_role == "manager"
        assert ctx.is_seller
        assert not ctx.is_supervisor
        assert not ctx.can_impersonate
        assert ctx.profile_id == target.id

    def test_manager_flags(self):
        manager = make_profile(role="manager")
        ctx = AccessContext(
            profile=manager, real_profile=manager, permissions=frozenset(DEFAULT_ROLE_PERMISSIONS["manager"])
        )
        assert ctx.is_manager
        assert ctx.has_permission(VIEW_TEAM_STATS)
        assert ctx.has_permission(MANAGE_USERS)
        assert not ctx.is_impersonating
