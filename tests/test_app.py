from __future__ import annotations

import pytest
from sqlalchemy import select

from zonta import _resolve_config, create_app
from zonta.config import DevelopmentConfig, TestingConfig
from zonta.extensions import db
from zonta.models import Product, User


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["parts"]["db"]["ok"] is True
    assert body["parts"]["stripe"]["mode"] == "test"


def test_healthz_degrades_without_webhook_secret(app, client):
    app.config["STRIPE_WEBHOOK_SECRET"] = ""
    body = client.get("/healthz").get_json()
    assert body["status"] == "degraded"
    assert body["parts"]["stripe"]["webhookSecretPresent"] is False


def test_version(client):
    body = client.get("/version").get_json()
    assert body["env"] == "testing"
    assert "version" in body


def test_request_id_is_echoed_or_generated(client):
    resp = client.get("/version", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"
    assert "X-Response-Time-ms" in resp.headers

    generated = client.get("/version").headers["X-Request-ID"]
    assert len(generated) == 32


def test_unknown_route_is_json(client):
    resp = client.get("/nope", headers={"X-Request-ID": "rid-1"})
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["ok"] is False
    assert body["error"]["code"] == 404
    assert body["error"]["request_id"] == "rid-1"


def test_cors_allows_frontend_origin(client):
    resp = client.get("/api/products", headers={"Origin": "http://frontend.test"})
    assert resp.headers.get("Access-Control-Allow-Origin") == "http://frontend.test"


class TestCli:
    def test_create_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(
            args=["create-admin", "--email", "Chair@Example.org", "--password", "long-enough-pw"]
        )
        assert result.exit_code == 0, result.output
        user = db.session.execute(select(User).where(User.email == "chair@example.org")).scalar_one()
        assert user.is_admin
        assert user.check_password("long-enough-pw")

    def test_create_admin_rejects_short_password(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["create-admin", "--email", "a@example.org", "--password", "short"])
        assert result.exit_code != 0
        assert db.session.execute(select(User)).first() is None

    def test_seed_products(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["shop", "seed-products", "--count", "3"])
        assert result.exit_code == 0, result.output
        assert db.session.query(Product).count() == 3

        result = runner.invoke(args=["shop", "seed-products", "--count", "2", "--clear"])
        assert result.exit_code == 0, result.output
        assert db.session.query(Product).count() == 2


def test_cors_ignores_unlisted_origin(client):
    resp = client.get("/api/products", headers={"Origin": "http://evil.test"})
    assert "Access-Control-Allow-Origin" not in resp.headers


def test_cross_origin_preflight_for_admin_writes_is_not_granted(client):
    resp = client.options(
        "/admin/products",
        headers={
            "Origin": "http://evil.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert "Access-Control-Allow-Origin" not in resp.headers


@pytest.mark.parametrize(
    "flask_config,app_env,expected",
    [
        ("testing", "", TestingConfig),
        ("zonta.config.TestingConfig", "", "zonta.config.TestingConfig"),
        ("", "testing", TestingConfig),
        ("", "dev", DevelopmentConfig),
        ("", "staging", DevelopmentConfig),
    ],
)
def test_config_resolution(monkeypatch, flask_config, app_env, expected):
    for key in ("FLASK_CONFIG", "APP_ENV", "ENV", "FLASK_ENV"):
        monkeypatch.delenv(key, raising=False)
    if flask_config:
        monkeypatch.setenv("FLASK_CONFIG", flask_config)
    if app_env:
        monkeypatch.setenv("APP_ENV", app_env)
    assert _resolve_config(None) == expected


def test_factory_honours_flask_config_short_name(monkeypatch, gateway):
    monkeypatch.setenv("FLASK_CONFIG", "testing")
    app = create_app(payment_gateway=gateway)
    assert app.config["TESTING"] is True
    assert app.config["SQLALCHEMY_DATABASE_URI"] == TestingConfig.SQLALCHEMY_DATABASE_URI
