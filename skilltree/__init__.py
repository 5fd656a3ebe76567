"""
Skill Progression Engine.

Dependency-gated skill graph, derived mastery tracking, spaced review and
defensive ingestion of AI-generated lesson content.
"""

__version__ = "1.0.0"
