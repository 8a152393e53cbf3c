from app.models.base import Base
from app.models.delivery import DeliveryMarker
from app.models.job_run import JobRun
from app.models.queue import DeadLetter, QueueMessage
from app.models.user import User

__all__ = [
    "Base",
    "User",
    "DeliveryMarker",
    "QueueMessage",
    "DeadLetter",
    "JobRun",
]
