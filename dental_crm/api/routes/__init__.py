"""
HTTP and WebSocket routers.

Each module owns one area of the CRM (auth, users, roles, clients, geo,
visits, quotations, dispatch, dashboard, activity, reports, realtime).
dental_crm.api.main.create_app mounts the HTTP routers under /api/v1 and the
WebSocket feeds under /ws.
"""
