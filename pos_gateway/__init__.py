"""
                Restaurant POS Gateway

Service layer and HTTP gateway for a restaurant point-of-sale platform:
order entry, kitchen display, inventory, menu, tables, shifts, loyalty,
and a public menu chat assistant, all backed by a hosted database
reached through CRUD calls and named remote procedures.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
