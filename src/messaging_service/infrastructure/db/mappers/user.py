from __future__ import annotations

from messaging_service.domain.entities.user import User
from messaging_service.infrastructure.db.models.user import UserModel


def model_to_entity(model: UserModel) -> User:
    return User(
        id=model.id,
        email=model.email,
        first_name=model.first_name,
        last_name=model.last_name,
        profile_picture=model.profile_picture,
    )
