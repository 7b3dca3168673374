import urllib.parse

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from users.models import User


@database_sync_to_async
def get_user_from_token(token_key):
    try:
        access = AccessToken(token_key)
        return User.objects.get(id=access["user_id"], is_active=True)
    except (TokenError, KeyError, User.DoesNotExist):
        return AnonymousUser()


class JWTAuthMiddleware(BaseMiddleware):
    """Authenticates websocket connections from a ``?token=<access>`` query parameter."""

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        query = scope.get("query_string", b"").decode()
        params = urllib.parse.parse_qs(query)
        token = params.get("token", [None])[0]
        scope["user"] = await get_user_from_token(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)
