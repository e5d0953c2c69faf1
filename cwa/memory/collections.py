"""Logical vector collections maintained by the memory engine."""

MEMORIES_COLLECTION = "cwa_memories"
OBSERVATIONS_COLLECTION = "cwa_observations"
DOMAIN_OBJECTS_COLLECTION = "cwa_domain_objects"
TERMS_COLLECTION = "cwa_terms"

DEFAULT_COLLECTIONS = (
    MEMORIES_COLLECTION,
    OBSERVATIONS_COLLECTION,
    DOMAIN_OBJECTS_COLLECTION,
    TERMS_COLLECTION,
)
