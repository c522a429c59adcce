import pytest

from bamx.routes import tickets as tickets_routes


@pytest.fixture
def correos(monkeypatch):
    enviados = []
    monkeypatch.setattr(tickets_routes, "send_ticket_email",
                        lambda usuario, ticket, accion: enviados.append((usuario.email, accion)))
    return enviados


def test_create_ticket_for_caller(client, ids, ts_headers, correos):
    response = client.post("/tickets", headers=ts_headers, json={"descripcion": "No carga el reporte"})

    assert response.status_code == 201
    data = response.json["data"]
    assert data["idUsuario"] == ids["ts"]
    assert data["estatus"] == "abierto"
    assert data["prioridad"] == "baja"
    assert data["usuario"]["email"] == "ts@bamx.org"
    assert correos == [("ts@bamx.org", "creacion")]


def test_create_ticket_validation(client, ts_headers, correos):
    assert client.post("/tickets", headers=ts_headers, json={}).status_code == 400
    assert client.post("/tickets", headers=ts_headers,
                       json={"descripcion": "x", "prioridad": "urgente"}).status_code == 400
    assert client.post("/tickets", headers=ts_headers,
                       json={"descripcion": "x", "idUsuario": 999999}).status_code == 404
    assert correos == []


def test_list_requires_admin(client, ts_headers, admin_headers, correos):
    client.post("/tickets", headers=ts_headers, json={"descripcion": "uno"})
    client.post("/tickets", headers=ts_headers, json={"descripcion": "dos"})

    assert client.get("/tickets", headers=ts_headers).status_code == 403
    response = client.get("/tickets", headers=admin_headers)
    assert response.status_code == 200
    assert [t["descripcion"] for t in response.json["data"]] == ["dos", "uno"]


def test_get_ticket_owner_or_admin(client, ts_headers, almacen_headers, admin_headers, correos):
    ticket_id = client.post("/tickets", headers=ts_headers, json={"descripcion": "Impresora"}).json["data"]["id"]

    assert client.get(f"/tickets/{ticket_id}", headers=ts_headers).status_code == 200
    assert client.get(f"/tickets/{ticket_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/tickets/{ticket_id}", headers=almacen_headers).status_code == 403
    assert client.get("/tickets/999999", headers=admin_headers).status_code == 404


def test_update_ticket_notifies_requester(client, ts_headers, admin_headers, correos):
    ticket_id = client.post("/tickets", headers=ts_headers, json={"descripcion": "Impresora"}).json["data"]["id"]

    response = client.patch(f"/tickets/{ticket_id}", headers=admin_headers,
                            json={"estatus": "en_proceso", "prioridad": "alta", "comentarios": "Revisando"})

    assert response.status_code == 200
    assert response.json["data"]["estatus"] == "en_proceso"
    assert response.json["data"]["comentarios"] == "Revisando"
    assert correos[-1] == ("ts@bamx.org", "actualizacion")


def test_update_ticket_validation(client, ts_headers, admin_headers, correos):
    ticket_id = client.post("/tickets", headers=ts_headers, json={"descripcion": "x"}).json["data"]["id"]

    assert client.patch(f"/tickets/{ticket_id}", headers=ts_headers, json={"estatus": "cerrado"}).status_code == 403
    assert client.patch(f"/tickets/{ticket_id}", headers=admin_headers, json={"estatus": "roto"}).status_code == 400
    assert client.patch("/tickets/999999", headers=admin_headers, json={"estatus": "cerrado"}).status_code == 404
