from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.app_config import get_app_environ_config
from app.shared.config import config
from app.shared.storage.mongo import get_mongo_client

from .broadcast import Broadcast
from .video import Video
from .viewer import ViewerCollection, ViewerSettings

DOCUMENT_MODELS = [Broadcast, Video, ViewerSettings, ViewerCollection]


async def init_beanie_odm(database: AsyncIOMotorDatabase) -> None:
    """Initialize Beanie ODM with all document models."""
    await init_beanie(
        database=database,  # type: ignore[arg-type]
        document_models=DOCUMENT_MODELS,
    )


async def init_schema():
    mongo_client = get_mongo_client(config.get_mongo_label())
    db = mongo_client[get_app_environ_config().MONGO_DB_NAME]
    await init_beanie_odm(db)


if __name__ == "__main__":
    import asyncio

    asyncio.run(init_schema())
