from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import CheckConstraint
from sqlalchemy.orm import selectinload

from bamx import db

ROL_DIRECCION = 'Direccion'
ROL_ALMACEN = 'Almacen'
ROL_TS = 'Ts'
ROL_COORDINADORA = 'Coordinadora'
ROL_CONSEJO = 'Consejo'
ROL_CONTABILIDAD = 'Contabilidad'

ROLES = (ROL_DIRECCION, ROL_ALMACEN, ROL_TS, ROL_COORDINADORA, ROL_CONSEJO, ROL_CONTABILIDAD)
ROLES_LIDERAZGO = (ROL_DIRECCION, ROL_COORDINADORA)

ESTADOS_PEDIDO = ('pendiente', 'creado', 'finalizado')
ESTATUS_TICKET = ('abierto', 'en_proceso', 'cerrado', 'cancelado')
PRIORIDADES_TICKET = ('baja', 'media', 'alta')

COSTO_PAQUETE_DEFAULT = Decimal('170.00')

# SQLite sólo autoincrementa columnas INTEGER PRIMARY KEY
BigId = db.BigInteger().with_variant(db.Integer, 'sqlite')


def _iso(value):
    return value.isoformat() if value else None


class Usuario(db.Model):
    __tablename__ = 'usuarios'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(256), nullable=False)
    email = db.Column(db.String(256), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    rol = db.Column(db.Enum(*ROLES, name='rol_usuario'), nullable=False, default=ROL_ALMACEN)
    verificado = db.Column(db.Boolean, nullable=False, default=False)
    activo = db.Column(db.Boolean, nullable=False, default=True)
    reset_password_token = db.Column(db.String(64), nullable=True)
    reset_password_expires = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    pedidos = db.relationship('Pedido', back_populates='usuario', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'rol': self.rol,
            'verificado': self.verificado,
            'activo': self.activo,
            'createdAt': _iso(self.created_at),
        }


class Ruta(db.Model):
    __tablename__ = 'rutas'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(50), nullable=False)

    comunidades = db.relationship('Comunidad', back_populates='ruta', cascade='all, delete-orphan', lazy=True)
    pedidos = db.relationship('Pedido', back_populates='ruta', cascade='all, delete-orphan', lazy=True)

    def to_dict(self):
        return {'id': self.id, 'nombre': self.nombre}


class Municipio(db.Model):
    __tablename__ = 'municipios'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(100), unique=True, nullable=False)

    comunidades = db.relationship('Comunidad', back_populates='municipio', lazy=True)

    def to_dict(self):
        return {'id': self.id, 'nombre': self.nombre}


class Comunidad(db.Model):
    __tablename__ = 'comunidades'

    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(200), nullable=False)
    id_municipio = db.Column(db.Integer, db.ForeignKey('municipios.id'), nullable=False)
    jefa = db.Column(db.String(100))
    contacto = db.Column(db.String(50))
    direccion = db.Column(db.Text)
    id_ruta = db.Column(db.Integer, db.ForeignKey('rutas.id'), nullable=False)
    costo_paquete = db.Column(db.Numeric(10, 2), nullable=False, default=COSTO_PAQUETE_DEFAULT)
    notas = db.Column(db.String(50))

    ruta = db.relationship('Ruta', back_populates='comunidades')
    municipio = db.relationship('Municipio', back_populates='comunidades')
    lineas = db.relationship('PedidoComunidad', back_populates='comunidad', cascade='all, delete-orphan', lazy=True)

    __table_args__ = (
        CheckConstraint("costo_paquete >= 0", name="comunidades_costo_check"),
    )

    @property
    def costo(self):
        return Decimal(self.costo_paquete) if self.costo_paquete is not None else COSTO_PAQUETE_DEFAULT

    def to_dict(self):
        return {
            'id': self.id,
            'nombre': self.nombre,
            'idMunicipio': self.id_municipio,
            'municipio': self.municipio.nombre if self.municipio else None,
            'jefa': self.jefa,
            'contacto': self.contacto,
            'direccion': self.direccion,
            'idRuta': self.id_ruta,
            'ruta': self.ruta.nombre if self.ruta else None,
            'costoPaquete': float(self.costo),
            'notas': self.notas,
        }


class Pedido(db.Model):
    __tablename__ = 'pedidos'

    id = db.Column(BigId, primary_key=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    id_ts = db.Column(db.Integer, db.ForeignKey('usuarios.id'), nullable=False)
    id_ruta = db.Column(db.Integer, db.ForeignKey('rutas.id'), nullable=False)
    fecha_entrega = db.Column(db.Date, nullable=False)
    estado = db.Column(db.Enum(*ESTADOS_PEDIDO, name='estado_pedido'), nullable=False, default='creado')
    devoluciones = db.Column(db.Integer, nullable=False, default=0)
    hora_llegada = db.Column(db.Time, nullable=True)
    cobranza_generada = db.Column(db.Boolean, nullable=False, default=False)
    url_cobranza = db.Column(db.String(255), nullable=True)

    usuario = db.relationship('Usuario', back_populates='pedidos')
    ruta = db.relationship('Ruta', back_populates='pedidos')
    lineas = db.relationship('PedidoComunidad', back_populates='pedido', cascade='all, delete-orphan',
                             order_by='PedidoComunidad.id_comunidad', lazy=True)
    cobranzas = db.relationship('Cobranza', back_populates='pedido', cascade='all, delete-orphan', lazy=True)

    @property
    def total(self):
        total = sum((linea.subtotal for linea in self.lineas), Decimal('0'))
        return total.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    @property
    def total_despensas(self):
        return sum(linea.total_despensas for linea in self.lineas)

    def to_dict(self):
        return {
            'id': self.id,
            'createdAt': _iso(self.created_at),
            'idTs': self.id_ts,
            'idRuta': self.id_ruta,
            'fechaEntrega': _iso(self.fecha_entrega),
            'estado': self.estado,
            'devoluciones': self.devoluciones,
            'horaLlegada': self.hora_llegada.strftime('%H:%M:%S') if self.hora_llegada else None,
            'cobranzaGenerada': self.cobranza_generada,
            'urlCobranza': self.url_cobranza,
            'usuario': {'username': self.usuario.username} if self.usuario else None,
            'ruta': {'nombre': self.ruta.nombre} if self.ruta else None,
        }

    def to_detail_dict(self):
        data = self.to_dict()
        data['pedidoComunidad'] = [linea.to_dict() for linea in self.lineas]
        data['total'] = float(self.total)
        return data


def pedido_detalle_options():
    """Carga TS, ruta, líneas, comunidades y municipios sin consultas N+1."""
    return (
        selectinload(Pedido.usuario),
        selectinload(Pedido.ruta),
        selectinload(Pedido.lineas).selectinload(PedidoComunidad.comunidad).selectinload(Comunidad.municipio),
    )


class PedidoComunidad(db.Model):
    __tablename__ = 'pedidoComunidad'

    id_pedido = db.Column(BigId, db.ForeignKey('pedidos.id'), primary_key=True)
    id_comunidad = db.Column(db.Integer, db.ForeignKey('comunidades.id'), primary_key=True)
    despensas_costo = db.Column(db.Integer, nullable=False, default=0)
    despensas_medio_costo = db.Column(db.Integer, nullable=False, default=0)
    despensas_sin_costo = db.Column(db.Integer, nullable=False, default=0)
    despensas_apadrinadas = db.Column(db.Integer, nullable=False, default=0)
    comite = db.Column(db.Integer, nullable=False, default=0)
    arpilladas = db.Column(db.Boolean, nullable=False, default=False)
    observaciones = db.Column(db.Text)

    pedido = db.relationship('Pedido', back_populates='lineas')
    comunidad = db.relationship('Comunidad', back_populates='lineas')

    @property
    def total_despensas(self):
        return (self.despensas_costo + self.despensas_medio_costo
                + self.despensas_sin_costo + self.despensas_apadrinadas)

    @property
    def subtotal(self):
        """Cuota de recuperación: costo completo más medio costo a la mitad."""
        costo = self.comunidad.costo if self.comunidad else COSTO_PAQUETE_DEFAULT
        return self.despensas_costo * costo + self.despensas_medio_costo * (costo / 2)

    def to_dict(self):
        comunidad = self.comunidad
        return {
            'idPedido': self.id_pedido,
            'idComunidad': self.id_comunidad,
            'despensasCosto': self.despensas_costo,
            'despensasMedioCosto': self.despensas_medio_costo,
            'despensasSinCosto': self.despensas_sin_costo,
            'despensasApadrinadas': self.despensas_apadrinadas,
            'comite': self.comite,
            'arpilladas': self.arpilladas,
            'observaciones': self.observaciones,
            'comunidad': {
                'nombre': comunidad.nombre,
                'jefa': comunidad.jefa,
                'contacto': comunidad.contacto,
                'costoPaquete': float(comunidad.costo),
                'municipio': {'nombre': comunidad.municipio.nombre if comunidad.municipio else None},
            } if comunidad else None,
        }


class Cobranza(db.Model):
    __tablename__ = 'cobranzas'

    id = db.Column(db.Integer, primary_key=True)
    id_pedido = db.Column(BigId, db.ForeignKey('pedidos.id'), nullable=False)
    url_archivo = db.Column(db.String(255), nullable=False)
    generado_por = db.Column(db.Integer, db.ForeignKey('usuarios.id'), nullable=True)
    fecha_generacion = db.Column(db.DateTime, default=datetime.utcnow)

    pedido = db.relationship('Pedido', back_populates='cobranzas')
    generador = db.relationship('Usuario')

    def to_dict(self, incluir_pedido=True):
        data = {
            'id': self.id,
            'idPedido': self.id_pedido,
            'urlArchivo': self.url_archivo,
            'generadoPor': self.generado_por,
            'fechaGeneracion': _iso(self.fecha_generacion),
        }
        if incluir_pedido and self.pedido:
            data['pedido'] = self.pedido.to_dict()
        return data


class Ticket(db.Model):
    __tablename__ = 'tickets'

    id = db.Column(db.Integer, primary_key=True)
    id_usuario = db.Column(db.Integer, db.ForeignKey('usuarios.id'), nullable=False)
    estatus = db.Column(db.Enum(*ESTATUS_TICKET, name='estatus_ticket'), nullable=False, default='abierto')
    prioridad = db.Column(db.Enum(*PRIORIDADES_TICKET, name='prioridad_ticket'), nullable=False, default='baja')
    descripcion = db.Column(db.Text, nullable=False)
    comentarios = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    usuario = db.relationship('Usuario')

    def to_dict(self):
        return {
            'id': self.id,
            'idUsuario': self.id_usuario,
            'estatus': self.estatus,
            'prioridad': self.prioridad,
            'descripcion': self.descripcion,
            'comentarios': self.comentarios,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
            'usuario': {
                'id': self.usuario.id,
                'username': self.usuario.username,
                'email': self.usuario.email,
            } if self.usuario else None,
        }
