"""Bookstore Catalog - Core Application Package

This package contains the application modules including:
- Table schema registry (schema.py)
- Input validation (validators.py)
- SQL query builder (query_builder.py)
- CRUD engine (crud.py)
- Store layer (database.py)
- API endpoints (api.py)
- Console interface (main.py, prompts.py, ui_helpers.py)
"""

__version__ = "1.0.0"
