"""MongoDB run storage."""

from supertx.mongodb.run_storage import MongoDBRunStorage

__all__ = ["MongoDBRunStorage"]
