"""
Engines - domain logic, independent of the HTTP layer.
"""
