"""Geofence attendance engine.

Feature modules (geofence, events, participants, attendance, monitoring)
with typed domain models, repository ports with MySQL and in-memory
adapters, and a thin Flask controller for the mobile client.
"""
