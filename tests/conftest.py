from datetime import date

import pytest

from bamx import bcrypt, create_app, db
from bamx.auth import create_token
from bamx.config import TestingConfig
from bamx.models import (ROL_ALMACEN, ROL_CONTABILIDAD, ROL_DIRECCION, ROL_TS, Comunidad, Municipio,
                         Pedido, PedidoComunidad, Ruta, Usuario)

PASSWORD = "password123"


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        COBRANZAS_DIR = str(tmp_path / "cobranzas")

    app = create_app(Config)
    with app.app_context():
        db.create_all()
        _seed_usuarios()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _seed_usuarios():
    password = bcrypt.generate_password_hash(PASSWORD).decode("utf-8")
    db.session.add_all([
        Usuario(username="direccion", email="direccion@bamx.org", password=password,
                rol=ROL_DIRECCION, verificado=True),
        Usuario(username="trabajadora", email="ts@bamx.org", password=password,
                rol=ROL_TS, verificado=True),
        Usuario(username="almacen", email="almacen@bamx.org", password=password,
                rol=ROL_ALMACEN, verificado=True),
        Usuario(username="contabilidad", email="conta@bamx.org", password=password,
                rol=ROL_CONTABILIDAD, verificado=True),
        Usuario(username="pendiente", email="pendiente@bamx.org", password=password,
                rol=ROL_TS, verificado=False),
    ])
    db.session.commit()


def _usuario_id(email):
    return Usuario.query.filter_by(email=email).one().id


def _headers(app, email):
    with app.app_context():
        usuario = Usuario.query.filter_by(email=email).one()
        return {"Authorization": f"Bearer {create_token(usuario)}"}


@pytest.fixture
def ids(app):
    with app.app_context():
        return {
            "admin": _usuario_id("direccion@bamx.org"),
            "ts": _usuario_id("ts@bamx.org"),
            "almacen": _usuario_id("almacen@bamx.org"),
            "contabilidad": _usuario_id("conta@bamx.org"),
            "pendiente": _usuario_id("pendiente@bamx.org"),
        }


@pytest.fixture
def admin_headers(app):
    return _headers(app, "direccion@bamx.org")


@pytest.fixture
def ts_headers(app):
    return _headers(app, "ts@bamx.org")


@pytest.fixture
def almacen_headers(app):
    return _headers(app, "almacen@bamx.org")


@pytest.fixture
def conta_headers(app):
    return _headers(app, "conta@bamx.org")


@pytest.fixture
def catalogo(app):
    """Dos rutas, dos municipios y tres comunidades."""
    with app.app_context():
        norte, sur = Ruta(nombre="Ruta Norte"), Ruta(nombre="Ruta Sur")
        tepa, arandas = Municipio(nombre="Tepatitlán"), Municipio(nombre="Arandas")
        a = Comunidad(nombre="Comunidad A", ruta=norte, municipio=tepa, jefa="Rosa", costo_paquete=170)
        b = Comunidad(nombre="Comunidad B", ruta=norte, municipio=arandas, jefa="Lupe", costo_paquete=100)
        c = Comunidad(nombre="Comunidad C", ruta=sur, municipio=tepa, jefa="Carmen", costo_paquete=170)
        db.session.add_all([norte, sur, tepa, arandas, a, b, c])
        db.session.commit()
        return {
            "norte": norte.id, "sur": sur.id,
            "tepa": tepa.id, "arandas": arandas.id,
            "a": a.id, "b": b.id, "c": c.id,
        }


def _linea(comunidad_id, costo=0, medio=0, sin=0, apadrinadas=0):
    return PedidoComunidad(id_comunidad=comunidad_id, despensas_costo=costo, despensas_medio_costo=medio,
                           despensas_sin_costo=sin, despensas_apadrinadas=apadrinadas)


@pytest.fixture
def pedidos(app, catalogo, ids):
    """Dos pedidos del año en curso y uno del año anterior.

    * p1: TS, Ruta Norte, 15 de enero, finalizado, 2 devoluciones;
      A = 10/4/2/1 y B = 5/0/0/3 (25 despensas, $2540.00)
    * p2: Dirección, Ruta Sur, 10 de febrero, pendiente, 1 devolución;
      C = 3/2/1/0 (6 despensas, $680.00)
    * p3: TS, Ruta Norte, 1 de junio del año anterior; A = 7/0/0/2
    """
    anio = date.today().year
    with app.app_context():
        p1 = Pedido(id_ts=ids["ts"], id_ruta=catalogo["norte"], fecha_entrega=date(anio, 1, 15),
                    estado="finalizado", devoluciones=2)
        p1.lineas = [_linea(catalogo["a"], 10, 4, 2, 1), _linea(catalogo["b"], 5, 0, 0, 3)]
        p2 = Pedido(id_ts=ids["admin"], id_ruta=catalogo["sur"], fecha_entrega=date(anio, 2, 10),
                    estado="pendiente", devoluciones=1)
        p2.lineas = [_linea(catalogo["c"], 3, 2, 1, 0)]
        p3 = Pedido(id_ts=ids["ts"], id_ruta=catalogo["norte"], fecha_entrega=date(anio - 1, 6, 1),
                    estado="finalizado", devoluciones=0)
        p3.lineas = [_linea(catalogo["a"], 7, 0, 0, 2)]
        db.session.add_all([p1, p2, p3])
        db.session.commit()
        return {"p1": p1.id, "p2": p2.id, "p3": p3.id, "anio": anio}
