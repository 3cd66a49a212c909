"""
Declarative Schema Definition.

Every table and index for ClientDesk lives here. The schema_engine reads
this and converges any database to match.

Adding a column = add one line here. The engine handles the rest.

Column definitions use CREATE TABLE syntax. The schema_engine derives
ALTER TABLE ADD COLUMN DDL from them (strips PK, adjusts NOT NULL, etc.).
"""

from collections import OrderedDict

SCHEMA_VERSION = 3

# =============================================================================
# Table Definitions
#
# Format: TABLES[name] = {"columns": [(col_name, col_ddl), ...], "unique": [...]}
# =============================================================================

TABLES: dict[str, dict] = OrderedDict()

TABLES["users"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("username", "TEXT NOT NULL UNIQUE"),
        ("full_name", "TEXT NOT NULL DEFAULT ''"),
        ("email", "TEXT"),
        ("password_salt", "TEXT NOT NULL"),
        ("password_hash", "TEXT NOT NULL"),
        ("is_active", "INTEGER NOT NULL DEFAULT 1"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("last_login_at", "TEXT"),
    ],
}

TABLES["clients"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("name", "TEXT NOT NULL"),
        ("email", "TEXT NOT NULL"),
        ("phone", "TEXT NOT NULL"),
        ("website", "TEXT"),
        ("industry", "TEXT"),
        ("google_ad_account_id", "TEXT"),
        ("monthly_service_charge", "REAL NOT NULL DEFAULT 0"),
        ("status", "TEXT NOT NULL DEFAULT 'active'"),
        ("contact_person", "TEXT"),
        ("address", "TEXT"),
        ("notes", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

# One row per client per billing month.
TABLES["billing"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("client_id", "INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE"),
        ("month", "INTEGER NOT NULL"),
        ("year", "INTEGER NOT NULL"),
        ("amount", "REAL NOT NULL"),
        ("paid_amount", "REAL NOT NULL DEFAULT 0"),
        ("is_paid", "INTEGER NOT NULL DEFAULT 0"),
        ("paid_date", "TEXT"),
        ("payment_method", "TEXT"),
        ("invoice_number", "TEXT"),
        ("notes", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
    "unique": [("client_id", "month", "year")],
}

TABLES["payments"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("client_id", "INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE"),
        ("amount", "REAL NOT NULL"),
        ("method", "TEXT NOT NULL DEFAULT 'Unspecified'"),
        ("received_at", "TEXT NOT NULL"),
        ("reference", "TEXT"),
        ("notes", "TEXT"),
        ("unapplied_amount", "REAL NOT NULL DEFAULT 0"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

TABLES["payment_allocations"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("payment_id", "INTEGER NOT NULL REFERENCES payments(id) ON DELETE CASCADE"),
        ("billing_id", "INTEGER NOT NULL REFERENCES billing(id) ON DELETE CASCADE"),
        ("amount", "REAL NOT NULL"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

TABLES["campaigns"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("client_id", "INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE"),
        ("name", "TEXT NOT NULL"),
        ("platform", "TEXT NOT NULL"),
        ("budget", "REAL NOT NULL DEFAULT 0"),
        ("start_date", "TEXT NOT NULL"),
        ("end_date", "TEXT"),
        ("status", "TEXT NOT NULL DEFAULT 'active'"),
        ("description", "TEXT"),
        ("target_audience", "TEXT"),
        ("keywords_json", "TEXT"),
        ("performance_json", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

TABLES["client_notes"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("client_id", "INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE"),
        ("title", "TEXT NOT NULL"),
        ("content", "TEXT NOT NULL"),
        ("type", "TEXT NOT NULL DEFAULT 'note'"),
        ("priority", "TEXT NOT NULL DEFAULT 'normal'"),
        ("is_completed", "INTEGER NOT NULL DEFAULT 0"),
        ("due_date", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

TABLES["client_files"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("client_id", "INTEGER NOT NULL REFERENCES clients(id) ON DELETE CASCADE"),
        ("file_name", "TEXT NOT NULL"),
        ("original_name", "TEXT NOT NULL"),
        ("file_size", "INTEGER NOT NULL"),
        ("mime_type", "TEXT NOT NULL"),
        ("file_path", "TEXT NOT NULL"),
        ("uploaded_by", "TEXT"),
        ("description", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

# No foreign key on client_id: history outlives the client it describes.
TABLES["activity_log"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("client_id", "INTEGER NOT NULL"),
        ("action", "TEXT NOT NULL"),
        ("description", "TEXT NOT NULL"),
        ("entity_type", "TEXT"),
        ("entity_id", "INTEGER"),
        ("metadata_json", "TEXT"),
        ("created_at", "TEXT NOT NULL"),
    ],
}

TABLES["tasks"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("title", "TEXT NOT NULL"),
        ("description", "TEXT"),
        ("status", "TEXT NOT NULL DEFAULT 'todo'"),
        ("priority", "TEXT NOT NULL DEFAULT 'normal'"),
        ("client_id", "INTEGER REFERENCES clients(id) ON DELETE SET NULL"),
        ("assignee", "TEXT"),
        ("due_date", "TEXT"),
        ("position", "INTEGER NOT NULL DEFAULT 0"),
        ("completed_at", "TEXT"),
        ("created_at", "TEXT NOT NULL"),
        ("updated_at", "TEXT NOT NULL"),
    ],
}

# =============================================================================
# Indexes: (name, table, columns, where)
# =============================================================================

INDEXES: list[tuple[str, str, str, str | None]] = [
    ("idx_clients_status", "clients", "status", None),
    ("idx_billing_client", "billing", "client_id, year, month", None),
    ("idx_billing_unpaid", "billing", "year, month", "is_paid = 0"),
    ("idx_payments_client", "payments", "client_id", None),
    ("idx_allocations_payment", "payment_allocations", "payment_id", None),
    ("idx_allocations_billing", "payment_allocations", "billing_id", None),
    ("idx_campaigns_client", "campaigns", "client_id", None),
    ("idx_notes_client", "client_notes", "client_id", None),
    ("idx_notes_due", "client_notes", "due_date", "is_completed = 0"),
    ("idx_files_client", "client_files", "client_id", None),
    ("idx_activity_client", "activity_log", "client_id, created_at", None),
    ("idx_tasks_status", "tasks", "status, position", None),
    ("idx_tasks_due", "tasks", "due_date", None),
    ("idx_tasks_client", "tasks", "client_id", None),
]
