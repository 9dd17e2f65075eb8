from dental_crm.core.settings import AppSettings


def test_cors_origins_comma_separated(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://crm.example.cl, http://localhost:5173")
    settings = AppSettings(_env_file=None)
    assert settings.CORS_ORIGINS == ["https://crm.example.cl", "http://localhost:5173"]


def test_cors_origins_json_and_empty(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", '["https://a.cl"]')
    monkeypatch.setenv("CORS_ALLOW_HEADERS", "")
    settings = AppSettings(_env_file=None)
    assert settings.CORS_ORIGINS == ["https://a.cl"]
    assert settings.CORS_ALLOW_HEADERS == ["*"]


def test_owner_email_is_normalised(monkeypatch):
    monkeypatch.setenv("OWNER_EMAIL", "  Owner@3Dental.CL ")
    assert AppSettings(_env_file=None).owner_email == "owner@3dental.cl"
