"""
Kernel layer: SQLAlchemy models and the document store built on them.
"""
