"""Declarative provisioning of ClickHouse databases, tables, roles and users."""

__version__ = "2.0.0"