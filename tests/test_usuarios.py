from bamx import bcrypt, db
from bamx.models import Usuario
from bamx.routes import usuarios as usuarios_routes


def test_list_requires_admin(client, ts_headers, admin_headers):
    assert client.get("/usuarios").status_code == 401
    assert client.get("/usuarios", headers=ts_headers).status_code == 403

    response = client.get("/usuarios", headers=admin_headers)
    assert response.status_code == 200
    assert isinstance(response.json["data"], list)
    assert all("password" not in u for u in response.json["data"])


def test_get_self_or_admin(client, ids, ts_headers, admin_headers):
    assert client.get(f"/usuarios/{ids['ts']}", headers=ts_headers).status_code == 200
    assert client.get(f"/usuarios/{ids['admin']}", headers=ts_headers).status_code == 403
    assert client.get(f"/usuarios/{ids['ts']}", headers=admin_headers).status_code == 200


def test_get_invalid_and_unknown_ids(client, admin_headers):
    assert client.get("/usuarios/abc", headers=admin_headers).status_code == 400
    assert client.get("/usuarios/999999", headers=admin_headers).status_code == 404


def test_update_without_token(client, ids):
    response = client.patch(f"/usuarios/{ids['ts']}", json={"username": "otra"})
    assert response.status_code == 401


def test_update_invalid_and_unknown_ids(client, admin_headers):
    assert client.patch("/usuarios/abc", json={"username": "x"}, headers=admin_headers).status_code == 400
    assert client.patch("/usuarios/999999", json={"username": "x"}, headers=admin_headers).status_code == 404


def test_update_own_profile_rehashes_password(client, app, ids, ts_headers):
    response = client.patch(f"/usuarios/{ids['ts']}", headers=ts_headers,
                            json={"username": "trabajadora social", "password": "clave-nueva"})

    assert response.status_code == 200
    assert response.json["data"]["username"] == "trabajadora social"
    with app.app_context():
        usuario = db.session.get(Usuario, ids["ts"])
        assert bcrypt.check_password_hash(usuario.password, "clave-nueva")


def test_non_admin_cannot_change_role(client, app, ids, ts_headers):
    response = client.patch(f"/usuarios/{ids['ts']}", headers=ts_headers, json={"rol": "Direccion"})

    assert response.status_code == 400
    assert response.json["error"]["message"] == "No fields to update"
    with app.app_context():
        assert db.session.get(Usuario, ids["ts"]).rol == "Ts"


def test_admin_changes_role(client, ids, admin_headers):
    response = client.patch(f"/usuarios/{ids['ts']}", headers=admin_headers, json={"rol": "Coordinadora"})
    assert response.status_code == 200
    assert response.json["data"]["rol"] == "Coordinadora"

    invalid = client.patch(f"/usuarios/{ids['ts']}", headers=admin_headers, json={"rol": "Jefe"})
    assert invalid.status_code == 400


def test_verify_user_sends_email(client, ids, admin_headers, monkeypatch):
    enviados = []
    monkeypatch.setattr(usuarios_routes, "send_verification_email", lambda u: enviados.append(u.email))

    response = client.patch(f"/usuarios/{ids['pendiente']}/verificar", headers=admin_headers, json={})

    assert response.status_code == 200
    assert response.json["data"]["verificado"] is True
    assert enviados == ["pendiente@bamx.org"]


def test_verify_invalid_id(client, admin_headers):
    assert client.patch("/usuarios/abc/verificar", headers=admin_headers, json={}).status_code == 400


def test_pending_users(client, admin_headers):
    response = client.get("/usuarios/todos/pendientes", headers=admin_headers)
    assert response.status_code == 200
    assert [u["email"] for u in response.json["data"]] == ["pendiente@bamx.org"]


def test_users_with_orders(client, pedidos, ts_headers):
    response = client.get("/usuarios/todos/conPedidos", headers=ts_headers)
    assert response.status_code == 200
    assert sorted(u["username"] for u in response.json["data"]) == ["direccion", "trabajadora"]


def test_delete_is_soft(client, app, ids, admin_headers):
    assert client.delete("/usuarios/999999", headers=admin_headers).status_code == 404

    response = client.delete(f"/usuarios/{ids['almacen']}", headers=admin_headers)
    assert response.status_code == 204
    assert response.data == b""
    with app.app_context():
        assert db.session.get(Usuario, ids["almacen"]).activo is False


def test_update_rejects_taken_email(client, app, ids, ts_headers):
    response = client.patch(f"/usuarios/{ids['ts']}", headers=ts_headers, json={"email": "Direccion@bamx.org "})

    assert response.status_code == 422
    with app.app_context():
        assert db.session.get(Usuario, ids["ts"]).email == "ts@bamx.org"


def test_update_rejects_blank_or_non_string_fields(client, app, ids, ts_headers):
    for body in ({"username": None}, {"username": "  "}, {"email": 42}, {"password": 12345678}):
        response = client.patch(f"/usuarios/{ids['ts']}", headers=ts_headers, json=body)
        assert response.status_code == 400, body

    with app.app_context():
        assert db.session.get(Usuario, ids["ts"]).username == "trabajadora"


def test_update_flags_must_be_booleans(client, ids, admin_headers):
    response = client.patch(f"/usuarios/{ids['pendiente']}", headers=admin_headers, json={"verificado": "false"})
    assert response.status_code == 400


def test_verify_requires_boolean(client, app, ids, admin_headers, monkeypatch):
    monkeypatch.setattr(usuarios_routes, "send_verification_email", lambda u: None)

    response = client.patch(f"/usuarios/{ids['pendiente']}/verificar", headers=admin_headers,
                            json={"verificado": "false"})
    assert response.status_code == 400
    with app.app_context():
        assert db.session.get(Usuario, ids["pendiente"]).verificado is False

    response = client.patch(f"/usuarios/{ids['pendiente']}/verificar", headers=admin_headers,
                            json={"verificado": False})
    assert response.status_code == 200
    assert response.json["data"]["verificado"] is False
