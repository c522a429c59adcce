import os
from urllib.parse import urlparse

from bamx import db
from bamx.models import Cobranza, Pedido
from bamx.routes import cobranzas as cobranzas_routes

EXTRAS = {
    "arpillasCantidad": 3,
    "arpillasImporte": 45,
    "excedentes": "frijol",
    "excedentesImporte": "20.50",
}


def test_generate_uploads_and_marks_order(client, app, ids, pedidos, conta_headers):
    response = client.post(f"/cobranzas/generar/{pedidos['p1']}", headers=conta_headers, json=EXTRAS)

    assert response.status_code == 201
    url = response.json["data"]["url"]
    assert f"cobranza_pedido%23{pedidos['p1']}_Ruta%20Norte_" in url

    with app.app_context():
        pedido = db.session.get(Pedido, pedidos["p1"])
        assert pedido.cobranza_generada is True
        assert pedido.url_cobranza == url
        cobranza = Cobranza.query.filter_by(id_pedido=pedidos["p1"]).one()
        assert cobranza.generado_por == ids["contabilidad"]

    archivos = [f for _, _, files in os.walk(app.config["COBRANZAS_DIR"]) for f in files]
    assert len(archivos) == 1
    assert archivos[0].endswith(".pdf")

    descarga = client.get(urlparse(url).path, headers=conta_headers)
    assert descarga.status_code == 200
    assert descarga.data.startswith(b"%PDF")


def test_generate_twice_conflicts(client, pedidos, admin_headers):
    url = f"/cobranzas/generar/{pedidos['p2']}"
    assert client.post(url, headers=admin_headers, json={}).status_code == 201
    assert client.post(url, headers=admin_headers, json={}).status_code == 409


def test_generate_unknown_order(client, admin_headers):
    assert client.post("/cobranzas/generar/999999", headers=admin_headers, json={}).status_code == 404
    assert client.post("/cobranzas/generar/abc", headers=admin_headers, json={}).status_code == 400


def test_generate_requires_billing_role(client, pedidos, ts_headers):
    response = client.post(f"/cobranzas/generar/{pedidos['p1']}", headers=ts_headers, json={})
    assert response.status_code == 403


def test_generate_rejects_bad_amounts(client, pedidos, admin_headers):
    response = client.post(f"/cobranzas/generar/{pedidos['p1']}", headers=admin_headers,
                           json={"arpillasImporte": "mucho"})
    assert response.status_code == 400


class FailingStorage:
    def upload(self, content, filename, folders):
        raise ConnectionError("drive unavailable")


def test_upload_failure_leaves_order_untouched(client, app, pedidos, admin_headers, monkeypatch):
    monkeypatch.setattr(cobranzas_routes, "get_storage", lambda: FailingStorage())

    response = client.post(f"/cobranzas/generar/{pedidos['p1']}", headers=admin_headers, json=EXTRAS)

    assert response.status_code == 500
    with app.app_context():
        pedido = db.session.get(Pedido, pedidos["p1"])
        assert pedido.cobranza_generada is False
        assert pedido.url_cobranza is None
        assert Cobranza.query.count() == 0


class RecordingStorage:
    def __init__(self):
        self.calls = []

    def upload(self, content, filename, folders):
        self.calls.append((filename, folders))
        return "https://drive.google.com/file/d/abc/view"


def test_upload_folder_layout(client, pedidos, admin_headers, monkeypatch):
    storage = RecordingStorage()
    monkeypatch.setattr(cobranzas_routes, "get_storage", lambda: storage)

    client.post(f"/cobranzas/generar/{pedidos['p2']}", headers=admin_headers, json={})

    filename, folders = storage.calls[0]
    assert filename.startswith(f"cobranza_pedido#{pedidos['p2']}_Ruta Sur_")
    assert folders[0] == "Ruta Sur"
    assert len(folders) == 2


def test_list_get_and_delete(client, app, pedidos, admin_headers, ts_headers, monkeypatch):
    monkeypatch.setattr(cobranzas_routes, "get_storage", lambda: RecordingStorage())
    client.post(f"/cobranzas/generar/{pedidos['p1']}", headers=admin_headers, json={})

    listado = client.get("/cobranzas", headers=ts_headers)
    assert listado.status_code == 200
    cobranza = listado.json["data"][0]
    assert cobranza["pedido"]["id"] == pedidos["p1"]

    assert client.get(f"/cobranzas/{cobranza['id']}", headers=ts_headers).status_code == 200
    assert client.get("/cobranzas/999999", headers=ts_headers).status_code == 404
    por_pedido = client.get(f"/cobranzas/pedido/{pedidos['p1']}", headers=ts_headers)
    assert [c["id"] for c in por_pedido.json["data"]] == [cobranza["id"]]

    assert client.delete(f"/cobranzas/{cobranza['id']}", headers=ts_headers).status_code == 403
    assert client.delete(f"/cobranzas/{cobranza['id']}", headers=admin_headers).status_code == 204
    with app.app_context():
        pedido = db.session.get(Pedido, pedidos["p1"])
        assert pedido.cobranza_generada is False
        assert pedido.url_cobranza is None
