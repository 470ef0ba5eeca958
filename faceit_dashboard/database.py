"""MongoDB connection and setup for the session store."""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import IndexModel, ASCENDING
import logging
import certifi

from faceit_dashboard.config import get_settings

logger = logging.getLogger(__name__)


class Database:
    """MongoDB database manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    @classmethod
    def configure(cls, url: str | None = None, database: str | None = None) -> AsyncIOMotorDatabase:
        """Create the client without connecting; motor connects on first use."""
        if cls.db is not None:
            return cls.db

        settings = get_settings()
        url = url or settings.mongodb_url

        client_options: dict = {
            "serverSelectionTimeoutMS": 5000,
            "connectTimeoutMS": 5000,
            "socketTimeoutMS": 5000,
        }

        # Force CA bundle usage on hosted clusters to avoid TLS trust issues.
        if url.startswith("mongodb+srv://"):
            client_options["tls"] = True
            client_options["tlsCAFile"] = certifi.where()

        cls.client = AsyncIOMotorClient(url, **client_options)
        cls.db = cls.client[database or settings.mongodb_database]
        return cls.db

    @classmethod
    async def connect(cls, url: str | None = None, database: str | None = None) -> None:
        """Connect to MongoDB and set up indexes."""
        db = cls.configure(url, database)

        # Verify connectivity before index creation.
        await cls.client.admin.command("ping")
        logger.info(f"Connected to MongoDB database: {db.name}")
        await cls._create_indexes()

    @classmethod
    async def disconnect(cls) -> None:
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            cls.client = None
            cls.db = None
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls) -> None:
        """Create necessary indexes for the sessions collection."""
        if cls.db is None:
            raise RuntimeError("Database not connected")

        # Expired sessions are removed by MongoDB's TTL monitor
        await cls.db.sessions.create_indexes([
            IndexModel([("expires_at", ASCENDING)], expireAfterSeconds=0, name="session_ttl"),
            IndexModel([("profile.id", ASCENDING)], name="session_profile_lookup", sparse=True),
        ])

        logger.info("Database indexes created successfully")

    @classmethod
    def get_db(cls) -> AsyncIOMotorDatabase:
        """Get the database instance."""
        if cls.db is None:
            raise RuntimeError("Database not connected. Call Database.connect() first.")
        return cls.db
