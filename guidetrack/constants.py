# guidetrack/constants.py
"""
Sentinels and field aliases shared by the normalizer and the aggregators
"""

# ===================== SENTINELS =====================
NOT_DEFINED = "No definido"
UNREGISTERED_DRIVER = "No registrado"
NO_CARGO_TYPE = "Sin tipo"
ALL = "Todos"

# ===================== FIELD ALIASES =====================
# Ordered: the first non-empty value wins
GUIDE_NUMBER_FIELDS = ("guideNumber", "guia", "guiaNumero", "numero")
ORIGIN_FIELDS = ("ubicacion", "origen", "origin", "location")
DESTINATION_FIELDS = ("destino", "destination")
SUB_DESTINATION_FIELDS = ("subDestino", "subdestino", "sub_destino", "subDestination")
TIMESTAMP_FIELDS = ("date", "fecha", "createdAt", "timestamp")
DRIVER_FIELDS = (
    "conductor",
    "chofer",
    "driver",
    "nombreConductor",
    "nombre_conductor",
    "conductorNombre",
    "nombreChofer",
    "choferNombre",
)

# Exact names tried before the keyword scan
CAPACITY_FIELDS = ("capacidad", "capacidadCarga", "capacidad_carga", "capacity", "m3", "volumen")
CAPACITY_KEYWORDS = ("capacidad", "capacity", "m3", "volumen", "cubic")
CARGO_TYPE_FIELDS = ("tipoCarga", "tipo_carga", "cargoType", "tipoMaterial", "material", "producto")
CARGO_TYPE_KEYWORDS = ("tipo", "material", "producto", "cargo")

# ===================== REPORTS =====================
VOLUME_UNIT = "m³"
INTERVAL_COLUMN_LABEL = "Intervalo {index}"
DEFAULT_RANGE_DAYS = 7

# ===================== USERS =====================
DEFAULT_ROLE = "usuario"
ADMIN_ROLE = "admin"
ROLES = (DEFAULT_ROLE, ADMIN_ROLE, "supervisor")
