"""Recibo de cuota de recuperación (cobranza) de un pedido.

El documento lleva dos copias idénticas del recibo (encabezado, tabla de
comunidades, extras y total de recuperación) separadas por una línea
punteada, y al final un resumen de despensas por comunidad.
"""
from datetime import date
from decimal import Decimal

from fpdf import FPDF

ORGANIZACION = "BANCO DIOCESANO DE ALIMENTOS DE LOS ALTOS A.C."
TITULO = "RECIBO CUOTA DE RECUPERACIÓN"

ANCHO = 180
COLUMNAS = (
    ("COMUNIDAD", 52), ("CUOTA", 18), ("CON CUOTA", 18), ("MEDIO COSTO", 18),
    ("SIN COSTO", 18), ("APADRINADAS", 20), ("TOTAL", 16), ("TOTAL $", 20),
)


def _txt(value):
    # Las fuentes base de PDF sólo cubren latin-1
    return str(value).encode("latin-1", "replace").decode("latin-1")


def _money(value):
    return f"${Decimal(value):,.2f}"


class ReciboCobranza(FPDF):

    def __init__(self, pedido, extras):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.pedido = pedido
        self.extras = extras
        self.set_margins(15, 12, 15)
        self.set_auto_page_break(auto=True, margin=12)

    @property
    def ts(self):
        return self.pedido.usuario.username if self.pedido.usuario else "N/A"

    @property
    def ruta(self):
        return self.pedido.ruta.nombre if self.pedido.ruta else "N/A"

    def encabezado(self):
        self.set_font("Helvetica", style="B", size=10)
        self.cell(0, 5, _txt(ORGANIZACION), align="C")
        self.ln()
        self.set_font("Helvetica", style="B", size=12)
        self.cell(0, 7, _txt(TITULO), align="C")
        self.ln(9)
        self.set_font("Helvetica", size=8)
        tercio = ANCHO / 3
        self.cell(tercio, 5, _txt(f"TS: {self.ts}"), align="C")
        self.cell(tercio, 5, _txt(f"RUTA: {self.ruta}"), align="C")
        self.cell(tercio, 5, _txt(f"FECHA DE ENTREGA: {self.pedido.fecha_entrega.isoformat()}"), align="C")
        self.ln(8)

    def tabla_comunidades(self):
        self.set_font("Helvetica", style="B", size=7)
        for titulo, ancho in COLUMNAS:
            self.cell(ancho, 6, titulo, border=1, align="C")
        self.ln()

        self.set_font("Helvetica", size=7)
        sumas = [0, 0, 0, 0, 0]
        subtotal_total = Decimal("0")
        for linea in self.pedido.lineas:
            valores = [linea.despensas_costo, linea.despensas_medio_costo, linea.despensas_sin_costo,
                       linea.despensas_apadrinadas, linea.total_despensas]
            sumas = [a + b for a, b in zip(sumas, valores)]
            subtotal_total += linea.subtotal

            fila = [_txt(linea.comunidad.nombre), _money(linea.comunidad.costo)]
            fila += [str(v) for v in valores]
            fila.append(_money(linea.subtotal))
            for (_, ancho), texto in zip(COLUMNAS, fila):
                self.cell(ancho, 5, texto, border=1, align="C")
            self.ln()

        self.cell(COLUMNAS[0][1] + COLUMNAS[1][1], 5, "TOTAL:", border=1, align="C")
        for (_, ancho), valor in zip(COLUMNAS[2:7], sumas):
            self.cell(ancho, 5, str(valor), border=1, align="C")
        self.cell(COLUMNAS[7][1], 5, _money(subtotal_total), border=1, align="C")
        self.ln(8)

    def tabla_extras(self):
        self.set_font("Helvetica", style="B", size=8)
        self.cell(ANCHO, 6, "EXTRAS", border=1, align="C")
        self.ln()
        for titulo, ancho in (("CONCEPTO", 100), ("DETALLE", 40), ("IMPORTE", 40)):
            self.cell(ancho, 6, titulo, border=1, align="C")
        self.ln()

        self.set_font("Helvetica", size=7)
        filas = (
            ("ARPILLAS", str(self.extras["arpillas_cantidad"]), self.extras["arpillas_importe"]),
            ("EXCEDENTES", self.extras["excedentes"], self.extras["excedentes_importe"]),
        )
        for concepto, detalle, importe in filas:
            self.cell(100, 5, concepto, border=1, align="C")
            self.cell(40, 5, _txt(detalle), border=1, align="C")
            self.cell(40, 5, _money(importe), border=1, align="C")
            self.ln()
        self.ln(3)

    def total_recuperacion(self):
        total = self.pedido.total + self.extras["arpillas_importe"] + self.extras["excedentes_importe"]
        self.set_font("Helvetica", style="B", size=10)
        self.cell(ANCHO / 2 + 30, 7, _txt("TOTAL RECUPERACIÓN POR RUTA:"), align="R")
        self.cell(40, 7, _money(total), align="C")
        self.ln(9)

    def separador(self):
        self.set_dash_pattern(dash=2, gap=1)
        y = self.get_y()
        self.line(self.l_margin, y, self.l_margin + ANCHO, y)
        self.set_dash_pattern()
        self.ln(4)

    def copia(self):
        self.encabezado()
        self.tabla_comunidades()
        self.tabla_extras()
        self.total_recuperacion()
        self.separador()

    def resumen(self, fecha_contabilidad):
        y_inicio = self.get_y()

        self.set_font("Helvetica", style="B", size=8)
        self.cell(65, 6, "COMUNIDAD", border=1, align="C")
        self.cell(25, 6, "TOTAL DESPENSAS", border=1, align="C")
        self.ln()
        self.set_font("Helvetica", size=7)
        for linea in self.pedido.lineas:
            self.cell(65, 5, _txt(linea.comunidad.nombre), border=1, align="C")
            self.cell(25, 5, str(linea.total_despensas), border=1, align="C")
            self.ln()
        self.set_font("Helvetica", style="B", size=7)
        self.cell(65, 5, "TOTAL DE DESPENSAS", border=1, align="C")
        self.cell(25, 5, str(self.pedido.total_despensas), border=1, align="C")

        datos = (
            ("Fecha Entrega Ruta:", self.pedido.fecha_entrega.isoformat()),
            ("Fecha Contabilidad:", fecha_contabilidad),
            ("Ruta:", self.ruta),
            ("Trabajador Social:", self.ts),
        )
        self.set_y(y_inicio)
        for etiqueta, valor in datos:
            self.set_x(self.l_margin + 100)
            self.set_font("Helvetica", style="B", size=9)
            self.cell(38, 6, _txt(etiqueta))
            self.set_font("Helvetica", size=8)
            self.cell(42, 6, _txt(valor))
            self.ln()


def generar_pdf_cobranza(pedido, extras, fecha_contabilidad=None):
    """Regresa los bytes del PDF de cobranza de ``pedido``.

    ``extras`` trae ``arpillas_cantidad``, ``arpillas_importe``,
    ``excedentes`` y ``excedentes_importe`` (importes en Decimal).
    """
    fecha_contabilidad = fecha_contabilidad or date.today().strftime("%d/%m/%Y")

    pdf = ReciboCobranza(pedido, extras)
    pdf.add_page()
    pdf.copia()
    pdf.copia()
    pdf.resumen(fecha_contabilidad)
    return bytes(pdf.output())
