"""
verify.py
---------
Purpose:
    Extract the caller's Microsoft Graph access token.

Notes:
    - Token acquisition and refresh happen upstream; this service only
      forwards the bearer token to Graph.
    - `graph_token_dependency` rejects requests without a token.
    - `optional_graph_token` lets Dialpad-only views run without one.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

_security = HTTPBearer(auto_error=False)


def optional_graph_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
) -> str | None:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def graph_token_dependency(token: str | None = Depends(optional_graph_token)) -> str:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Microsoft Graph access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token
