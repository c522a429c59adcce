from decimal import Decimal

from bamx import db
from bamx.models import Comunidad, Municipio


def test_create_with_municipality_name(client, app, catalogo, admin_headers):
    response = client.post("/comunidades", headers=admin_headers, json={
        "nombre": "Comunidad de Prueba",
        "idRuta": catalogo["norte"],
        "municipio": "Ciudad de Prueba",
        "jefa": "Líder de Prueba",
        "contacto": "contacto@test.com",
        "direccion": "Dirección de Prueba",
    })

    assert response.status_code == 201
    data = response.json["data"]
    assert data["municipio"] == "Ciudad de Prueba"
    assert data["costoPaquete"] == 170.0
    with app.app_context():
        assert Municipio.query.filter_by(nombre="Ciudad de Prueba").count() == 1


def test_create_reuses_existing_municipality(client, app, catalogo, admin_headers):
    response = client.post("/comunidades", headers=admin_headers, json={
        "nombre": "Otra", "idRuta": catalogo["sur"], "municipio": "Arandas", "costoPaquete": 85.5,
    })
    assert response.status_code == 201
    assert response.json["data"]["idMunicipio"] == catalogo["arandas"]
    assert response.json["data"]["costoPaquete"] == 85.5
    with app.app_context():
        assert Municipio.query.count() == 2


def test_create_missing_fields(client, catalogo, admin_headers):
    bodies = [
        {"nombre": "Falta idRuta", "municipio": "Arandas"},
        {"idRuta": catalogo["norte"], "municipio": "Arandas"},
        {"nombre": "Falta municipio", "idRuta": catalogo["norte"]},
    ]
    for body in bodies:
        response = client.post("/comunidades", headers=admin_headers, json=body)
        assert response.status_code == 400


def test_create_negative_cost(client, catalogo, admin_headers):
    response = client.post("/comunidades", headers=admin_headers, json={
        "nombre": "Cara", "idRuta": catalogo["norte"], "idMunicipio": catalogo["tepa"], "costoPaquete": -1,
    })
    assert response.status_code == 400


def test_create_requires_leadership(client, catalogo, ts_headers):
    response = client.post("/comunidades", headers=ts_headers, json={
        "nombre": "X", "idRuta": catalogo["norte"], "idMunicipio": catalogo["tepa"],
    })
    assert response.status_code == 403


def test_paginated_list_is_an_array(client, catalogo, ts_headers):
    response = client.get("/comunidades?page=1&limit=2", headers=ts_headers)
    assert response.status_code == 200
    assert isinstance(response.json["data"], list)
    assert [c["nombre"] for c in response.json["data"]] == ["Comunidad A", "Comunidad B"]

    response = client.get("/comunidades?page=2&limit=2", headers=ts_headers)
    assert [c["nombre"] for c in response.json["data"]] == ["Comunidad C"]

    response = client.get("/comunidades", headers=ts_headers)
    assert len(response.json["data"]) == 3


def test_filter_by_municipality_name_and_id(client, catalogo, ts_headers):
    response = client.get("/comunidades/ciudad/Tepatitlán", headers=ts_headers)
    assert response.status_code == 200
    assert {c["nombre"] for c in response.json["data"]} == {"Comunidad A", "Comunidad C"}
    assert all(c["municipio"] == "Tepatitlán" for c in response.json["data"])

    response = client.get(f"/comunidades/ciudad/{catalogo['arandas']}", headers=ts_headers)
    assert [c["nombre"] for c in response.json["data"]] == ["Comunidad B"]


def test_filter_by_route(client, catalogo, ts_headers):
    response = client.get(f"/comunidades/ruta/{catalogo['norte']}", headers=ts_headers)
    assert response.status_code == 200
    assert [c["nombre"] for c in response.json["data"]] == ["Comunidad A", "Comunidad B"]
    assert response.json["data"][0]["municipio"] == "Tepatitlán"


def test_get_by_id(client, catalogo, ts_headers):
    response = client.get(f"/comunidades/{catalogo['b']}", headers=ts_headers)
    assert response.status_code == 200
    assert response.json["data"]["id"] == catalogo["b"]
    assert response.json["data"]["ruta"] == "Ruta Norte"

    assert client.get("/comunidades/invalid", headers=ts_headers).status_code == 400
    assert client.get("/comunidades/999999", headers=ts_headers).status_code == 404


def test_update_community(client, app, catalogo, admin_headers):
    response = client.patch(f"/comunidades/{catalogo['a']}", headers=admin_headers,
                            json={"nombre": "Nombre Actualizado", "costoPaquete": "150.50", "id": 99})
    assert response.status_code == 200
    with app.app_context():
        comunidad = db.session.get(Comunidad, catalogo["a"])
        assert comunidad.nombre == "Nombre Actualizado"
        assert comunidad.costo == Decimal("150.50")


def test_update_rejects_bad_cost(client, catalogo, admin_headers):
    for costo in (-5, "abc", True):
        response = client.patch(f"/comunidades/{catalogo['a']}", headers=admin_headers,
                                json={"costoPaquete": costo})
        assert response.status_code == 400


def test_delete_community(client, app, catalogo, admin_headers):
    assert client.delete("/comunidades/999999", headers=admin_headers).status_code == 404
    response = client.delete(f"/comunidades/{catalogo['c']}", headers=admin_headers)
    assert response.status_code == 204
    with app.app_context():
        assert db.session.get(Comunidad, catalogo["c"]) is None


def test_municipalities(client, catalogo, ts_headers):
    response = client.get("/municipios", headers=ts_headers)
    assert response.status_code == 200
    assert [m["nombre"] for m in response.json["data"]] == ["Arandas", "Tepatitlán"]

    response = client.get(f"/municipios/{catalogo['tepa']}", headers=ts_headers)
    assert response.json["data"]["nombre"] == "Tepatitlán"
    assert client.get("/municipios/999999", headers=ts_headers).status_code == 404
