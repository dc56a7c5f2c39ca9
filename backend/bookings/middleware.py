"""WebSocket authentication middleware using simplejwt access tokens."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


@database_sync_to_async
def _get_user(user_id):
    try:
        return User.objects.get(id=user_id)
    except User.DoesNotExist:
        return AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    """
    Authenticate WebSocket connections with a JWT in the querystring
    (``?token=...``). Anything else connects as AnonymousUser.
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())
        token_list = params.get("token")

        scope["user"] = AnonymousUser()
        if token_list:
            try:
                access = AccessToken(token_list[0])
                scope["user"] = await _get_user(access["user_id"])
            except (TokenError, KeyError) as e:
                logger.debug("JWT auth failed: %s", e)

        return await super().__call__(scope, receive, send)
