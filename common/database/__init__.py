"""
Database module - Generic async MongoDB connection using Motor.

Usage:
    from common.database import MongoDB

    db = MongoDB()
    await db.connect(uri, database_name)

    records = db.get_collection("dailyRecords")
"""

from common.database.mongodb import MongoDB, mask_uri

__all__ = [
    "MongoDB",
    "mask_uri",
]
