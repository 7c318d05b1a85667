def test_health_endpoint_returns_ok(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.data == b"ok"
    assert resp.headers["Content-Type"].startswith("text/plain")


def test_ready_endpoint_makes_no_store_call(client, credentials, profiles):
    resp = client.get("/ready")

    assert resp.status_code == 200
    assert resp.data == b"ready"
    assert credentials.calls == []
    assert profiles.calls == []


def test_ready_without_store_clients_is_503():
    from flask import Flask

    from idprov.api import health

    app = Flask(__name__)
    app.register_blueprint(health.bp)

    resp = app.test_client().get("/ready")

    assert resp.status_code == 503
