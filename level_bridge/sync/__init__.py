"""Sincronización de suscripciones contra el almacén de configuración."""
