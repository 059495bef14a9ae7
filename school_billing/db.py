"""MongoDB client lifecycle and Beanie registration of the billing documents."""
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from school_billing.config import settings
from school_billing.models import DOCUMENT_MODELS

_client: AsyncIOMotorClient | None = None


async def init_db() -> None:
    global _client
    _client = AsyncIOMotorClient(settings.mongodb_url, serverSelectionTimeoutMS=5000)
    await init_beanie(database=_client[settings.mongodb_db_name], document_models=DOCUMENT_MODELS)


async def db_shutdown() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
