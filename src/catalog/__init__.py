# src/catalog/__init__.py — v1
