"""Reducciones en memoria para los tableros de reportes.

Cada reporte recibe los pedidos ya cargados (con ruta, TS, líneas,
comunidades y municipios) y los reduce con pandas sobre dos tablas:

* ``pedidos``: una fila por pedido, con la suma de sus líneas por tipo.
* ``lineas``: una fila por línea pedido-comunidad.

Las despensas de una línea son la suma de los cuatro tipos (costo, medio
costo, sin costo y apadrinadas).
"""
import pandas as pd

TIPOS = ["costo", "medio_costo", "sin_costo", "apadrinadas"]

# Nombre de cada tipo en las respuestas JSON
TIPOS_JSON = {"costo": "costo", "medio_costo": "medioCosto", "sin_costo": "sinCosto", "apadrinadas": "apadrinadas"}

PEDIDO_COLUMNS = ["pedido_id", "fecha", "mes", "estado", "devoluciones", "ruta_id", "ruta",
                  "ts_id", "ts", "comunidades", "despensas"] + TIPOS
LINEA_COLUMNS = ["pedido_id", "fecha", "mes", "ruta_id", "ruta", "ts_id", "ts", "comunidad_id",
                 "comunidad", "municipio_id", "municipio", "costo_paquete", "despensas"] + TIPOS

TOP = 5


def build_frames(pedidos, comunidad_id=None, municipio_id=None):
    """Regresa ``(pedidos_df, lineas_df)``.

    Con ``comunidad_id`` o ``municipio_id`` sólo se conservan las líneas que
    coinciden y se descartan los pedidos que se quedan sin líneas.
    """
    filtrar = comunidad_id is not None or municipio_id is not None
    pedido_rows, linea_rows = [], []

    for pedido in pedidos:
        fecha = pedido.fecha_entrega.isoformat()
        mes = fecha[:7]
        ruta = pedido.ruta.nombre if pedido.ruta else "Sin ruta"
        ts = pedido.usuario.username if pedido.usuario else "Sin TS"

        sumas = dict.fromkeys(TIPOS, 0)
        nombres = []
        for linea in pedido.lineas:
            comunidad = linea.comunidad
            if comunidad_id is not None and linea.id_comunidad != comunidad_id:
                continue
            if municipio_id is not None and comunidad.id_municipio != municipio_id:
                continue

            valores = {
                "costo": linea.despensas_costo or 0,
                "medio_costo": linea.despensas_medio_costo or 0,
                "sin_costo": linea.despensas_sin_costo or 0,
                "apadrinadas": linea.despensas_apadrinadas or 0,
            }
            for tipo in TIPOS:
                sumas[tipo] += valores[tipo]
            nombres.append(comunidad.nombre)

            linea_rows.append({
                "pedido_id": pedido.id, "fecha": fecha, "mes": mes,
                "ruta_id": pedido.id_ruta, "ruta": ruta, "ts_id": pedido.id_ts, "ts": ts,
                "comunidad_id": linea.id_comunidad, "comunidad": comunidad.nombre,
                "municipio_id": comunidad.id_municipio,
                "municipio": comunidad.municipio.nombre if comunidad.municipio else "Sin municipio",
                "costo_paquete": float(comunidad.costo),
                "despensas": sum(valores.values()),
                **valores,
            })

        if filtrar and not nombres:
            continue

        pedido_rows.append({
            "pedido_id": pedido.id, "fecha": fecha, "mes": mes, "estado": pedido.estado,
            "devoluciones": pedido.devoluciones or 0,
            "ruta_id": pedido.id_ruta, "ruta": ruta, "ts_id": pedido.id_ts, "ts": ts,
            "comunidades": ", ".join(nombres),
            "despensas": sum(sumas.values()),
            **sumas,
        })

    return (pd.DataFrame(pedido_rows, columns=PEDIDO_COLUMNS),
            pd.DataFrame(linea_rows, columns=LINEA_COLUMNS))


def _tipos(row):
    return {TIPOS_JSON[tipo]: int(row[tipo]) for tipo in TIPOS}


def _tipos_total(df):
    return {TIPOS_JSON[tipo]: int(df[tipo].sum()) for tipo in TIPOS}


def _ratio(numerador, denominador, factor=1, digits=2):
    if not denominador:
        return 0
    return round(float(numerador) / float(denominador) * factor, digits)


def _desc(df, column):
    # mergesort es estable: en empate se respeta el orden de aparición
    return df.sort_values(column, ascending=False, kind="mergesort")


def _top(serie, n=TOP):
    serie = serie.sort_values(ascending=False, kind="mergesort").head(n)
    return [{"nombre": nombre, "total": int(total)} for nombre, total in serie.items()]


def _por_mes(lineas):
    por_mes = lineas.groupby("mes")[TIPOS].sum().sort_index()
    return [{"mes": mes, **_tipos(row)} for mes, row in por_mes.iterrows()]


def _calendario_rows(pedidos_df):
    return [{
        "id": int(row.pedido_id),
        "fecha": row.fecha,
        "estado": row.estado,
        "ruta": row.ruta,
        "totalDespensas": int(row.despensas),
    } for row in pedidos_df.itertuples(index=False)]


def resumen(pedidos_anio, pedidos_mes):
    ped, lin = build_frames(pedidos_anio)
    cal, _ = build_frames(pedidos_mes)

    return {
        "despensasPorMes": _por_mes(lin),
        "tiposDespensas": _tipos_total(lin),
        "topTrabajadores": [
            {"username": username, "total": int(total)}
            for (_, username), total in ped.groupby(["ts_id", "ts"])["despensas"].sum()
            .sort_values(ascending=False, kind="mergesort").head(TOP).items()
        ],
        # Las apadrinadas no cuentan para el ranking de comunidades
        "topComunidades": _top(lin.groupby("comunidad")[["costo", "medio_costo", "sin_costo"]].sum().sum(axis=1)),
        "topRutas": _top(ped.groupby("ruta")["despensas"].sum()),
        "rutasDevoluciones": _top(ped.groupby("ruta")["devoluciones"].sum()),
        "calendario": _calendario_rows(cal),
    }


def reporte_rutas(pedidos):
    ped, _ = build_frames(pedidos)
    agrupado = ped.groupby(["ruta_id", "ruta"]).agg(
        pedidos=("pedido_id", "nunique"),
        devoluciones=("devoluciones", "sum"),
        despensas=("despensas", "sum"),
        **{tipo: (tipo, "sum") for tipo in TIPOS},
    ).sort_index()

    tabla = [{
        "id": int(ruta_id),
        "nombre": nombre,
        "metricas": {
            "pedidos": int(row["pedidos"]),
            "despensas": int(row["despensas"]),
            "devoluciones": int(row["devoluciones"]),
            "detalleDespensas": _tipos(row),
        },
    } for (ruta_id, nombre), row in agrupado.iterrows()]

    return {
        "tablaMetricas": tabla,
        "rankingPedidos": sorted(tabla, key=lambda r: r["metricas"]["pedidos"], reverse=True),
        "rankingDespensas": sorted(tabla, key=lambda r: r["metricas"]["despensas"], reverse=True),
        "graficaComparativa": {
            "labels": [r["nombre"] for r in tabla],
            "datasets": [
                {"label": "Total Despensas", "data": [r["metricas"]["despensas"] for r in tabla]},
                {"label": "Devoluciones", "data": [r["metricas"]["devoluciones"] for r in tabla]},
            ],
        },
    }


def reporte_ts(pedidos):
    ped, _ = build_frames(pedidos)
    ped = ped.assign(pendiente=(ped["estado"] == "pendiente").astype(int))
    agrupado = ped.groupby(["ts_id", "ts"]).agg(
        pedidos=("pedido_id", "nunique"),
        devoluciones=("devoluciones", "sum"),
        despensas=("despensas", "sum"),
        pendientes=("pendiente", "sum"),
        ultima=("fecha", "max"),
    ).sort_index()
    total_pedidos = int(agrupado["pedidos"].sum()) if len(agrupado) else 0

    tabla = []
    for (ts_id, username), row in agrupado.iterrows():
        pedidos_ts, despensas = int(row["pedidos"]), int(row["despensas"])
        tabla.append({
            "id": int(ts_id),
            "username": username,
            "metricas": {
                "pedidos": pedidos_ts,
                "despensas": despensas,
                "devoluciones": int(row["devoluciones"]),
                "pedidosPendientes": int(row["pendientes"]),
                "avgDespensas": _ratio(despensas, pedidos_ts, digits=1),
                "porcentajeDevoluciones": _ratio(row["devoluciones"], despensas, 100, digits=1),
                "porcentajeContribucion": _ratio(pedidos_ts, total_pedidos, 100, digits=1),
                "ultimaActividad": row["ultima"] or "N/A",
            },
        })

    recientes = _desc(ped, "fecha").groupby("ts_id", sort=True).head(3)
    actividad = []
    for ts_id, grupo in recientes.groupby("ts_id", sort=True):
        actividad.append({
            "tsId": int(ts_id),
            "pedidos": [{
                "id": int(p.pedido_id),
                "fecha": p.fecha,
                "estado": p.estado,
                "despensas": int(p.despensas),
            } for p in grupo.itertuples(index=False)],
        })

    return {
        "tablaMetricas": tabla,
        "graficas": {
            "barras": [{"ts": t["username"], "pedidos": t["metricas"]["pedidos"],
                        "despensas": t["metricas"]["despensas"]} for t in tabla],
            "pastel": [{"name": t["username"], "value": t["metricas"]["despensas"]} for t in tabla],
        },
        "actividadReciente": actividad,
    }


def reporte_despensas(pedidos, comunidad_id=None, municipio_id=None, limit=10):
    ped, lin = build_frames(pedidos, comunidad_id=comunidad_id, municipio_id=municipio_id)

    devoluciones_mes = ped.groupby("mes")["devoluciones"].sum().sort_index()
    devoluciones_ruta = ped.groupby("ruta")["devoluciones"].sum().sort_values(ascending=False, kind="mergesort")

    por_ruta = ped.groupby("ruta").agg(despensas=("despensas", "sum"), pedidos=("pedido_id", "nunique"))
    por_comunidad = lin.groupby(["comunidad_id", "comunidad", "municipio"]).agg(
        despensas=("despensas", "sum"), pedidos=("pedido_id", "nunique"))

    tabla = [{
        "id": int(p.pedido_id),
        "fecha": p.fecha,
        "estado": p.estado,
        "ruta": p.ruta,
        "ts": p.ts,
        "comunidades": p.comunidades,
        "despensasCosto": int(p.costo),
        "despensasMedioCosto": int(p.medio_costo),
        "despensasSinCosto": int(p.sin_costo),
        "despensasApadrinadas": int(p.apadrinadas),
        "totalDespensas": int(p.despensas),
        "devoluciones": int(p.devoluciones),
    } for p in _desc(ped, "fecha").head(limit).itertuples(index=False)]

    return {
        "evolucionMensual": _por_mes(lin),
        "resumenTipos": _tipos_total(lin),
        "tendenciaDevoluciones": {
            "mensual": [{"mes": mes, "total": int(total)} for mes, total in devoluciones_mes.items()],
            "porRuta": [{"ruta": ruta, "total": int(total)} for ruta, total in devoluciones_ruta.items()],
        },
        "promedios": {
            "global": _ratio(lin["despensas"].sum(), len(ped)),
            "porRuta": [{"ruta": ruta, "promedio": _ratio(row["despensas"], row["pedidos"])}
                        for ruta, row in por_ruta.iterrows()],
            "porComunidad": [{"comunidad": nombre, "municipio": municipio,
                              "promedio": _ratio(row["despensas"], row["pedidos"])}
                             for (_, nombre, municipio), row in por_comunidad.iterrows()],
        },
        "tablaDetallada": tabla,
    }


def reporte_comunidades(comunidades, pedidos, pedidos_evolucion=None, comunidad_id=None):
    """``comunidades`` incluye las que no tienen pedidos en el periodo."""
    _, lin = build_frames(pedidos)
    agrupado = lin.groupby("comunidad_id").agg(
        pedidos=("pedido_id", "nunique"),
        despensas=("despensas", "sum"),
        **{tipo: (tipo, "sum") for tipo in TIPOS},
    )

    tabla = []
    for comunidad in comunidades:
        if comunidad.id in agrupado.index:
            row = agrupado.loc[comunidad.id]
            pedidos_c, despensas, detalle = int(row["pedidos"]), int(row["despensas"]), _tipos(row)
        else:
            pedidos_c, despensas, detalle = 0, 0, {TIPOS_JSON[t]: 0 for t in TIPOS}
        tabla.append({
            "id": comunidad.id,
            "nombre": comunidad.nombre,
            "municipio": comunidad.municipio.nombre if comunidad.municipio else None,
            "totalPedidos": pedidos_c,
            "totalDespensas": despensas,
            "detalleDespensas": detalle,
        })

    response = {
        "topComunidadesPedidos": sorted(tabla, key=lambda c: c["totalPedidos"], reverse=True)[:TOP],
        "topComunidadesDespensas": sorted(tabla, key=lambda c: c["totalDespensas"], reverse=True)[:TOP],
        "mapaVolumen": [{"comunidad": c["nombre"], "municipio": c["municipio"],
                         "totalDespensas": c["totalDespensas"]} for c in tabla],
        "tablaDetallada": sorted(tabla, key=lambda c: c["totalDespensas"], reverse=True),
    }

    if comunidad_id is not None:
        _, lin_evolucion = build_frames(pedidos_evolucion or [], comunidad_id=comunidad_id)
        por_mes = lin_evolucion.groupby("mes")[TIPOS].sum().sort_index()
        response["evolucion"] = [{
            "mes": mes,
            "totalDespensas": int(row.sum()),
            "detalles": _tipos(row),
        } for mes, row in por_mes.iterrows()]

    return response


def reporte_apadrinadas(pedidos_anio, pedidos_todos, limit=10):
    _, lin_anio = build_frames(pedidos_anio)
    ped, lin = build_frames(pedidos_todos)

    por_mes = lin_anio.groupby("mes")[TIPOS + ["despensas"]].sum().sort_index()
    total_apadrinadas = int(lin_anio["apadrinadas"].sum())

    top_ts = lin.groupby(["ts_id", "ts"])["apadrinadas"].sum()
    top_ts = top_ts[top_ts > 0].sort_values(ascending=False, kind="mergesort").head(TOP)
    top_comunidades = lin.groupby(["comunidad_id", "comunidad"])["apadrinadas"].sum()
    top_comunidades = top_comunidades[top_comunidades > 0].sort_values(ascending=False, kind="mergesort").head(TOP)

    apadrinadas = lin[lin["apadrinadas"] > 0]
    nombres = apadrinadas.groupby("pedido_id")["comunidad"].apply(list)
    ultimos = _desc(ped[ped["apadrinadas"] > 0], "fecha").head(limit)

    return {
        "evolucionMensual": [{
            "mes": mes,
            "apadrinadas": int(row["apadrinadas"]),
            "porcentaje": _ratio(row["apadrinadas"], row["despensas"], 100),
        } for mes, row in por_mes.iterrows()],
        "metricasGlobales": {
            "totalApadrinadas": total_apadrinadas,
            "porcentajeTotal": _ratio(total_apadrinadas, lin_anio["despensas"].sum(), 100),
        },
        "topTS": [{"id": int(ts_id), "username": username, "total": int(total)}
                  for (ts_id, username), total in top_ts.items()],
        "topComunidades": [{"id": int(comunidad_id), "nombre": nombre, "total": int(total)}
                           for (comunidad_id, nombre), total in top_comunidades.items()],
        "ultimosPedidos": [{
            "id": int(p.pedido_id),
            "fecha": p.fecha,
            "comunidades": list(nombres.get(p.pedido_id, [])),
            "totalApadrinadas": int(p.apadrinadas),
        } for p in ultimos.itertuples(index=False)],
    }


MONTOS = ["costo_total", "ingresos_recaudados", "despensas_subsidiadas"]


def _montos(row):
    ingresos, subsidiadas = float(row["ingresos_recaudados"]), float(row["despensas_subsidiadas"])
    return {
        "costoTotal": round(float(row["costo_total"]), 2),
        "ingresosRecaudados": round(ingresos, 2),
        "despensasSubsidiadas": round(subsidiadas, 2),
        "balance": round(ingresos - subsidiadas, 2),
    }


def _distribucion(lin, keys, extra=None):
    agrupado = lin.groupby(keys)[MONTOS].sum()
    filas = []
    for key, row in agrupado.iterrows():
        nombre = key[0] if isinstance(key, tuple) else key
        fila = {"nombre": nombre, **_montos(row)}
        if extra:
            fila.update(extra(key))
        filas.append(fila)
    return sorted(filas, key=lambda f: f["balance"], reverse=True)


def reporte_economico(pedidos, comunidad_id=None, municipio_id=None):
    _, lin = build_frames(pedidos, comunidad_id=comunidad_id, municipio_id=municipio_id)

    costo = lin["costo_paquete"].astype(float)
    lin = lin.assign(
        ingresos_costo=lin["costo"] * costo,
        ingresos_medio=lin["medio_costo"] * costo / 2,
        costo_sin=lin["sin_costo"] * costo,
        costo_apadrinadas=lin["apadrinadas"] * costo,
    )
    lin = lin.assign(
        ingresos_recaudados=lin["ingresos_costo"] + lin["ingresos_medio"],
        despensas_subsidiadas=lin["costo_sin"] + lin["costo_apadrinadas"],
    )
    lin = lin.assign(costo_total=lin["ingresos_recaudados"] + lin["despensas_subsidiadas"])

    global_ = _montos(lin[MONTOS].sum())
    por_mes = lin.groupby("mes")[MONTOS].sum().sort_index()

    return {
        "resumenGlobal": {
            "costoTotal": global_["costoTotal"],
            "ingresosRecaudados": global_["ingresosRecaudados"],
            "despensasSubsidiadas": global_["despensasSubsidiadas"],
            "balanceNeto": global_["balance"],
            "detalle": {
                "costoCompleto": round(float(lin["ingresos_costo"].sum()), 2),
                "medioCosto": round(float(lin["ingresos_medio"].sum()), 2),
                "sinCosto": round(float(lin["costo_sin"].sum()), 2),
                "apadrinadas": round(float(lin["costo_apadrinadas"].sum()), 2),
            },
        },
        "evolucionMensual": [{"mes": mes, **_montos(row)} for mes, row in por_mes.iterrows()],
        "distribucionComunidades": _distribucion(lin, ["comunidad", "municipio"],
                                                 extra=lambda key: {"municipio": key[1]}),
        "distribucionMunicipios": _distribucion(lin, "municipio"),
        "distribucionRutas": _distribucion(lin, "ruta"),
    }


def calendario(pedidos):
    ped, _ = build_frames(pedidos)
    return _calendario_rows(ped)
