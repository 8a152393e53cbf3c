from app.schemas.task import DeliveryTask, decode_task
from app.schemas.user import Location, UserCreate, UserResponse, UserUpdate

__all__ = [
    "DeliveryTask",
    "decode_task",
    "Location",
    "UserCreate",
    "UserUpdate",
    "UserResponse",
]
