from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
            db_name = os.environ.get('DB_NAME', 'translation_quotes')
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[db_name]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {db_name}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create the indexes the engine relies on. Schema is owned here, never repaired at request time."""
        try:
            # Users - email is the login key, account_number is the human-facing id
            try:
                await self.db.users.create_index("email", unique=True)
            except Exception:
                pass  # Index may already exist with different options
            await self.db.users.create_index("user_id", unique=True)
            await self.db.users.create_index("account_number", sparse=True)
            await self.db.users.create_index("parent_user_id", sparse=True)

            # Projects - owner listing and human-facing reference lookups
            await self.db.projects.create_index("project_id", unique=True)
            await self.db.projects.create_index([("owner_id", 1), ("created_at", -1)])
            await self.db.projects.create_index("project_ref")
            await self.db.projects.create_index("status")
            await self.db.projects.create_index("source_file_ref", unique=True, sparse=True)

            # Audit log indexes - for timeline queries
            await self.db.audit_logs.create_index([("resource_type", 1), ("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index("action")

            # Message log indexes
            await self.db.message_logs.create_index([("created_at", -1)])
            await self.db.message_logs.create_index([("project_id", 1), ("created_at", -1)])

            logger.info("Database indexes created successfully")
        except Exception as e:
            logger.warning(f"Index creation warning (may already exist): {e}")

database = Database()
