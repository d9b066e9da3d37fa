"""Capa HTTP: app FastAPI, rutas de auth y transporte de procedimientos."""
