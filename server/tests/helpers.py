"""Caller identities and bearer tokens shared by the test suites."""

import jwt

from helitour.core.config import settings
from helitour.core.dependencies import Identity, Role

CLIENT = Identity(user_id="client-1", role=Role.CLIENT)
OTHER_CLIENT = Identity(user_id="client-2", role=Role.CLIENT)
PILOT = Identity(user_id="pilot-1", role=Role.PILOT)
OTHER_PILOT = Identity(user_id="pilot-2", role=Role.PILOT)
ADMIN = Identity(user_id="admin-1", role=Role.ADMIN)


def make_token(identity: Identity) -> str:
    return jwt.encode(
        {"sub": identity.user_id, "role": identity.role.value},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def auth_headers(identity: Identity) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(identity)}"}
