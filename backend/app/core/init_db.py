import logging

import pymongo

logger = logging.getLogger(__name__)


async def create_indexes(db):
    """Creates indexes for all collections, including the ones invariants rely on."""
    logger.info("Creating database indexes...")

    # Users
    await db["users"].create_index("username", unique=True)
    await db["users"].create_index("email", unique=True)

    # Teams
    await db["teams"].create_index("creator_id")
    await db["teams"].create_index("name")

    # Team members: at most one membership per (user, team)
    await db["team_members"].create_index(
        [("user_id", pymongo.ASCENDING), ("team_id", pymongo.ASCENDING)], unique=True
    )
    await db["team_members"].create_index(
        [("team_id", pymongo.ASCENDING), ("status", pymongo.ASCENDING), ("role", pymongo.ASCENDING)]
    )

    # Tasks
    await db["tasks"].create_index(
        [("team_id", pymongo.ASCENDING), ("created_at", pymongo.DESCENDING)]
    )
    await db["tasks"].create_index("assignee_id")
    await db["tasks"].create_index("status")

    # Comments
    await db["comments"].create_index(
        [("task_id", pymongo.ASCENDING), ("created_at", pymongo.ASCENDING)]
    )

    # Events
    await db["events"].create_index(
        [("team_id", pymongo.ASCENDING), ("start_date", pymongo.ASCENDING)]
    )
    await db["events"].create_index(
        [("creator_id", pymongo.ASCENDING), ("start_date", pymongo.ASCENDING)]
    )
    await db["events"].create_index("is_recurring")
    # Occurrence key: one row per template slot, even if two ticks race
    await db["events"].create_index(
        [("template_id", pymongo.ASCENDING), ("occurrence_start", pymongo.ASCENDING)],
        unique=True,
        partialFilterExpression={"template_id": {"$type": "string"}},
        name="uniq_template_occurrence",
    )

    # Distributed locks: let MongoDB reap expired entries
    await db["distributed_locks"].create_index("expires_at", expireAfterSeconds=0)

    logger.info("Database indexes created successfully.")


async def init_db(db):
    await create_indexes(db)
