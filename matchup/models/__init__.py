"""
Matchup — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from matchup.models.participant import GENDERS, Participant

__all__ = [
    "GENDERS",
    "Participant",
]
