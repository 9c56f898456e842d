"""Import all models so Base.metadata knows every table."""
from messaging_service.infrastructure.db.models.conversation import ConversationModel
from messaging_service.infrastructure.db.models.message import MessageModel
from messaging_service.infrastructure.db.models.notification import NotificationModel
from messaging_service.infrastructure.db.models.participant import ParticipantModel
from messaging_service.infrastructure.db.models.user import UserModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "NotificationModel",
    "ParticipantModel",
    "UserModel",
]
