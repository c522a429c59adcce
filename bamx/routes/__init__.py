from bamx.routes import auth, cobranzas, comunidades, municipios, pedidos, reportes, rutas, tickets, usuarios

BLUEPRINTS = (
    (auth.api, "/auth"),
    (usuarios.api, "/usuarios"),
    (pedidos.api, "/pedidos"),
    (comunidades.api, "/comunidades"),
    (rutas.api, "/rutas"),
    (municipios.api, "/municipios"),
    (reportes.api, "/reportes"),
    (tickets.api, "/tickets"),
    (cobranzas.api, "/cobranzas"),
)


def register_blueprints(app):
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)
