"""Customer list export from a MISA-style export service and an Odoo CRM backend."""

__version__ = "0.1.0"
