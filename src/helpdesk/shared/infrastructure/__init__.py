"""
Infrastructure Layer
=====================

Low-level technical concerns shared by every bounded context:
- Logging setup
- In-process domain event bus
- Keyed locks for per-entity serialization
"""
