from typing import TypeVar

from beanie import Document, PydanticObjectId
from bson import ObjectId

D = TypeVar("D", bound=Document)


async def get_by_id(model: type[D], raw_id: str | None) -> D | None:
    """Fetch by string id; malformed ids behave like missing documents."""
    if not raw_id or not ObjectId.is_valid(raw_id):
        return None
    return await model.get(PydanticObjectId(raw_id))
