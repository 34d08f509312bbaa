"""
models/ - Domain Models
=======================
Plain dataclasses mirroring the database tables. Money fields are Decimals.
"""
