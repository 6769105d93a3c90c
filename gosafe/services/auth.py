# gosafe/services/auth.py
from __future__ import annotations

import boto3
from botocore.exceptions import ClientError

from gosafe.errors import ForbiddenError, UnauthorizedError
from gosafe.models.user import Principal, UserRecord

ROLE_ATTRIBUTE = "custom:role"


class CognitoIdentityProvider:
    """
    Resolves a Cognito access token to the calling user. Sign-up, login and
    token refresh stay with Cognito; this only validates what the client sends.
    """

    def __init__(self, store, region: str, client=None):
        self.store = store
        self.cognito = client or boto3.client("cognito-idp", region_name=region)

    def authenticate(self, token: str) -> Principal:
        if not token:
            raise UnauthorizedError("No token provided")

        try:
            resp = self.cognito.get_user(AccessToken=token)
        except ClientError as e:
            msg = e.response.get("Error", {}).get("Message", "Invalid or expired token")
            raise UnauthorizedError(msg) from e

        attrs = {a["Name"]: a["Value"] for a in resp.get("UserAttributes", [])}
        user_id = attrs.get("sub") or resp.get("Username")
        if not user_id:
            raise UnauthorizedError("User not found")

        role = attrs.get(ROLE_ATTRIBUTE, "user")
        if role not in ("user", "admin"):
            role = "user"

        # banned accounts keep valid tokens until expiry, so check on every call
        item = self.store.get_user(user_id)
        if item:
            user = UserRecord(
                user_id=user_id,
                banned=bool(item.get("banned", False)),
                banned_reason=item.get("banned_reason"),
            )
            if user.banned:
                raise ForbiddenError(f"Account banned: {user.banned_reason or 'Contact support'}")

        return Principal(user_id=user_id, role=role)


def bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("No token provided")
    return authorization[len("Bearer "):].strip()
