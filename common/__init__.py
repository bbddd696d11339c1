"""Configuración y acceso a base de datos compartidos."""
