"""Lookup entity enums."""

from enum import Enum


class EntityStatus(str, Enum):
    """Status for companies, customers, professionals and teams."""

    ACTIVE = "active"
    INACTIVE = "inactive"


DEFAULT_ENTITY_STATUS = EntityStatus.ACTIVE
