from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

from dental_crm.services.dashboard import (
    NEVER_VISITED_DAYS,
    account_time,
    combined_activity,
    display_name,
    format_hours,
    month_bounds,
    monthly_progress,
    neglected_clients,
)

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)


def test_account_time_mixes_visits_orders_and_calls():
    c1, c2, c3 = uuid4(), uuid4(), uuid4()
    visits = [
        SimpleNamespace(client_id=c1, check_in_time=NOW - timedelta(hours=2), check_out_time=NOW - timedelta(hours=1, minutes=30)),
        # still open: runs until now
        SimpleNamespace(client_id=c2, check_in_time=NOW - timedelta(minutes=10, seconds=59), check_out_time=None),
    ]
    orders = [
        SimpleNamespace(client_id=c3, visit_id=None),
        SimpleNamespace(client_id=c1, visit_id=uuid4()),
    ]
    calls = [SimpleNamespace(client_id=c3)]

    account = account_time(visits, orders, calls, now=NOW)
    assert account.minutes == 30 + 10 + 15 + 7
    assert account.handled_clients == 3


def test_account_time_clamps_negative_visits():
    visit = SimpleNamespace(client_id=uuid4(), check_in_time=NOW, check_out_time=NOW - timedelta(minutes=5))
    assert account_time([visit], [], [], now=NOW).minutes == 0


def test_format_hours():
    assert format_hours(62) == "1h 2m"
    assert format_hours(0) == "0h 0m"
    assert format_hours(-5) == "0h 0m"


def test_display_name():
    assert display_name("Ana Pérez", "ana.perez@3dental.cl") == "Ana Pérez"
    assert display_name(None, "ana.perez@3dental.cl") == "ANA.PEREZ"
    assert display_name("", None) == ""


def test_neglected_clients_sorted_most_neglected_first():
    never, old, recent = uuid4(), uuid4(), uuid4()
    clients = [(recent, "Reciente"), (old, "Antiguo"), (never, "Nunca")]
    last = {old: NOW - timedelta(days=20), recent: NOW - timedelta(days=3)}

    result = neglected_clients(clients, last, now=NOW, threshold_days=15)
    assert [c.name for c in result] == ["Nunca", "Antiguo"]
    assert result[0].days_since_last_visit == NEVER_VISITED_DAYS
    assert result[0].last_visit_date is None
    assert result[1].days_since_last_visit == 20


def test_neglected_threshold_is_inclusive():
    client = uuid4()
    result = neglected_clients([(client, "Justo")], {client: NOW - timedelta(days=15)}, now=NOW)
    assert len(result) == 1


def test_monthly_progress():
    progress = monthly_progress(goal=1_000_000, sales=250_000, commission_rate=None)
    assert progress.commission_rate == 0.01
    assert progress.commission == 2500
    assert progress.progress_percent == 25

    custom = monthly_progress(goal=0, sales=100_000, commission_rate=0.03)
    assert custom.commission == 3000
    assert custom.progress_percent == 0


def test_month_bounds_leap_february():
    start, end = month_bounds(datetime(2024, 2, 10, 15, 0, tzinfo=timezone.utc))
    assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert end.date().day == 29
    assert (end + timedelta(microseconds=1)) == datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_combined_activity_newest_first():
    client = SimpleNamespace(id=uuid4(), name="Clínica Sonrisa", zone="Santiago")
    visit = SimpleNamespace(check_in_time=NOW - timedelta(hours=3), status="completed")
    digital = SimpleNamespace(created_at=NOW - timedelta(hours=1), visit_id=None)
    in_visit = SimpleNamespace(created_at=NOW - timedelta(hours=2), visit_id=uuid4())
    call = SimpleNamespace(created_at=NOW - timedelta(minutes=30), status=None)

    feed = combined_activity([(visit, client)], [(digital, client), (in_visit, client)], [(call, client)])
    assert [e.type for e in feed] == ["Llamada", "Pedido Digital", "Visita"]
    assert feed[0].status == "Finalizada"
    assert feed[1].status == "Completado"
    assert feed[2].zone == "Santiago"
