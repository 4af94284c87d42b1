"""Default table and foreign-key declaration of the clinical records schema.

Tables are listed in import order: every table appears after the tables its
foreign keys point at. ``auth.users`` is the external identity store and is
never exported.
"""

from typing import List

from ..models.schema import EXTERNAL_IDENTITY, ForeignKeyEdge, TableDefinition
from .schema_registry import SchemaRegistry

# (order, name, label, category, declared dependencies)
TABLES = [
    (1, "branches", "Sedes", "Configuración", []),
    (2, "profiles", "Perfiles de Usuario", "Configuración", [EXTERNAL_IDENTITY]),
    (3, "user_roles", "Roles de Usuario", "Configuración", ["profiles"]),
    (4, "user_branches", "Sedes de Usuario", "Configuración", ["profiles", "branches"]),
    (5, "rooms", "Salas", "Configuración", ["branches"]),
    (6, "suppliers", "Proveedores", "Inventario Caja", []),
    (7, "patients", "Pacientes", "Clínicos", []),
    (8, "service_prices", "Precios de Servicios", "Configuración", []),
    (9, "study_types", "Tipos de Estudio", "Catálogos", []),
    (10, "surgery_types", "Tipos de Cirugía", "Catálogos", []),
    (11, "procedure_types", "Tipos de Procedimiento", "Catálogos", []),
    (12, "templates", "Plantillas", "Catálogos", []),
    (13, "app_settings", "Configuración App", "Sistema", []),
    (14, "edge_function_settings", "Config Edge Functions", "Sistema", []),
    (15, "crm_procedure_types", "Tipos Procedimiento CRM", "CRM", []),
    (16, "crm_pipelines", "Pipelines CRM", "CRM", ["patients", "crm_procedure_types", "profiles", "branches"]),
    (17, "crm_pipeline_stages", "Etapas Pipeline CRM", "CRM", ["crm_pipelines"]),
    (18, "crm_pipeline_notes", "Notas Pipeline CRM", "CRM", ["crm_pipelines"]),
    (19, "crm_activity_log", "Actividad CRM", "CRM", ["crm_pipelines", "branches"]),
    (20, "crm_activity_read", "Lectura Actividad CRM", "CRM", []),
    (21, "room_inventory_categories", "Categorías Inv. Sala", "Inventario Sala", ["branches"]),
    (22, "room_inventory_items", "Items Inv. Sala", "Inventario Sala", ["room_inventory_categories", "branches"]),
    (23, "room_inventory_movements", "Movimientos Inv. Sala", "Inventario Sala", ["room_inventory_items", "branches"]),
    (24, "inventory_items", "Inventario", "Inventario Caja", ["branches", "suppliers"]),
    (25, "inventory_lots", "Lotes de Inventario", "Inventario Caja", ["inventory_items"]),
    (26, "appointments", "Citas", "Clínicos", ["patients", "rooms", "branches", "profiles"]),
    (27, "schedule_blocks", "Bloqueos de Agenda", "Sistema", ["branches", "rooms", "profiles"]),
    (28, "encounters", "Encuentros", "Clínicos", ["patients", "appointments", "profiles"]),
    (29, "exam_eye", "Exámenes Oculares", "Clínicos", ["encounters"]),
    (30, "diagnoses", "Diagnósticos", "Clínicos", ["encounters"]),
    (31, "surgeries", "Cirugías", "Clínicos", ["encounters"]),
    (32, "surgery_files", "Archivos de Cirugías", "Archivos", ["surgeries"]),
    (33, "procedures", "Procedimientos", "Clínicos", ["encounters"]),
    (34, "studies", "Estudios", "Clínicos", ["patients", "appointments"]),
    (35, "study_files", "Archivos de Estudios", "Archivos", ["studies"]),
    (36, "orders", "Órdenes", "Archivos", ["encounters"]),
    (37, "results", "Resultados", "Archivos", ["orders"]),
    (38, "documents", "Documentos", "Archivos", ["encounters"]),
    (39, "invoices", "Facturas", "Facturación", ["patients", "appointments", "branches"]),
    (40, "invoice_items", "Items de Factura", "Facturación", ["invoices"]),
    (41, "payments", "Pagos", "Facturación", ["invoices"]),
    (42, "cash_closures", "Cierres de Caja", "Facturación", ["branches"]),
    (43, "inventory_movements", "Movimientos Inv. Caja", "Inventario Caja", ["inventory_items", "inventory_lots", "branches"]),
    (44, "audit_logs", "Logs de Auditoría", "Sistema", []),
    (45, "pending_registrations", "Registros Pendientes", "Sistema", []),
    (46, "backup_snapshots", "Respaldos", "Sistema", ["profiles"]),
]

# source table -> (column, target table, target column, nullable)
FOREIGN_KEYS = {
    "edge_function_settings": [
        ("disabled_by", "profiles", "user_id", True),
    ],
    "profiles": [
        ("user_id", EXTERNAL_IDENTITY, "id", False),
    ],
    "user_roles": [
        ("user_id", EXTERNAL_IDENTITY, "id", False),
    ],
    "user_branches": [
        ("user_id", EXTERNAL_IDENTITY, "id", False),
        ("branch_id", "branches", "id", False),
    ],
    "rooms": [
        ("branch_id", "branches", "id", False),
    ],
    "crm_pipelines": [
        ("patient_id", "patients", "id", False),
        ("procedure_type_id", "crm_procedure_types", "id", False),
        ("doctor_id", "profiles", "user_id", True),
        ("branch_id", "branches", "id", False),
        ("created_by", "profiles", "user_id", True),
    ],
    "crm_pipeline_stages": [
        ("pipeline_id", "crm_pipelines", "id", False),
        ("created_by", "profiles", "user_id", True),
        ("updated_by", "profiles", "user_id", True),
    ],
    "crm_pipeline_notes": [
        ("pipeline_id", "crm_pipelines", "id", False),
        ("created_by", "profiles", "user_id", True),
    ],
    "crm_activity_log": [
        ("pipeline_id", "crm_pipelines", "id", False),
        ("branch_id", "branches", "id", False),
        ("created_by", "profiles", "user_id", True),
    ],
    "crm_activity_read": [
        ("user_id", EXTERNAL_IDENTITY, "id", False),
    ],
    "room_inventory_categories": [
        ("branch_id", "branches", "id", False),
        ("parent_id", "room_inventory_categories", "id", True),
    ],
    "room_inventory_items": [
        ("branch_id", "branches", "id", False),
        ("category_id", "room_inventory_categories", "id", False),
    ],
    "room_inventory_movements": [
        ("branch_id", "branches", "id", False),
        ("item_id", "room_inventory_items", "id", False),
        ("user_id", EXTERNAL_IDENTITY, "id", True),
    ],
    "inventory_items": [
        ("branch_id", "branches", "id", False),
        ("supplier_id", "suppliers", "id", True),
    ],
    "inventory_lots": [
        ("item_id", "inventory_items", "id", False),
    ],
    "inventory_movements": [
        ("branch_id", "branches", "id", False),
        ("item_id", "inventory_items", "id", False),
        ("lot_id", "inventory_lots", "id", True),
        ("created_by", "profiles", "user_id", True),
    ],
    "appointments": [
        ("patient_id", "patients", "id", True),
        ("room_id", "rooms", "id", True),
        ("branch_id", "branches", "id", False),
        ("doctor_id", "profiles", "user_id", True),
    ],
    "schedule_blocks": [
        ("branch_id", "branches", "id", False),
        ("room_id", "rooms", "id", True),
        ("doctor_id", "profiles", "user_id", True),
        ("created_by", "profiles", "user_id", True),
    ],
    "encounters": [
        ("patient_id", "patients", "id", True),
        ("appointment_id", "appointments", "id", True),
        ("doctor_id", "profiles", "user_id", True),
    ],
    "exam_eye": [
        ("encounter_id", "encounters", "id", True),
    ],
    "diagnoses": [
        ("encounter_id", "encounters", "id", True),
    ],
    "surgeries": [
        ("encounter_id", "encounters", "id", False),
    ],
    "surgery_files": [
        ("surgery_id", "surgeries", "id", False),
    ],
    "procedures": [
        ("encounter_id", "encounters", "id", False),
    ],
    "studies": [
        ("patient_id", "patients", "id", False),
        ("appointment_id", "appointments", "id", True),
    ],
    "study_files": [
        ("study_id", "studies", "id", False),
    ],
    "orders": [
        ("encounter_id", "encounters", "id", False),
    ],
    "results": [
        ("order_id", "orders", "id", False),
    ],
    "documents": [
        ("encounter_id", "encounters", "id", False),
        ("created_by", "profiles", "user_id", True),
    ],
    "invoices": [
        ("patient_id", "patients", "id", True),
        ("appointment_id", "appointments", "id", True),
        ("branch_id", "branches", "id", False),
        ("created_by", "profiles", "user_id", True),
    ],
    "invoice_items": [
        ("invoice_id", "invoices", "id", True),
    ],
    "payments": [
        ("invoice_id", "invoices", "id", False),
        ("created_by", "profiles", "user_id", True),
    ],
    "cash_closures": [
        ("branch_id", "branches", "id", False),
        ("closed_by", "profiles", "user_id", True),
    ],
    "audit_logs": [
        ("user_id", EXTERNAL_IDENTITY, "id", True),
    ],
    "backup_snapshots": [
        ("created_by", "profiles", "user_id", True),
    ],
}


def clinical_tables() -> List[TableDefinition]:
    return [
        TableDefinition(name=name, label=label, category=category, order=order, dependencies=frozenset(deps))
        for order, name, label, category, deps in TABLES
    ]


def clinical_edges() -> List[ForeignKeyEdge]:
    edges = []
    for source_table, columns in FOREIGN_KEYS.items():
        for column, target_table, target_column, nullable in columns:
            edges.append(ForeignKeyEdge(
                source_table=source_table,
                source_column=column,
                target_table=target_table,
                target_column=target_column,
                nullable=nullable,
            ))
    return edges


def build_clinical_registry() -> SchemaRegistry:
    """Build the registry for the clinical records schema."""
    return SchemaRegistry(clinical_tables(), clinical_edges())
