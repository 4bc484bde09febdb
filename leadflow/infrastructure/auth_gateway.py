"""
Auth Gateway
Password sign-in and step-up re-verification against Supabase Auth.

A fresh anon-key client is used per call so signing someone in never
replaces the session held by the shared service-role client.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import Client, create_client

logger = logging.getLogger(__name__)


@dataclass
class AuthTokens:
    """Tokens issued at sign-in"""
    access_token: str
    refresh_token: str
    user_id: str
    email: str


class AuthenticationError(Exception):
    """Raised when credentials are rejected."""
    def __init__(self, message: str = "Invalid email or password"):
        self.message = message
        super().__init__(self.message)


class AuthGateway:
    """Thin wrapper over supabase.auth for password flows"""
    
    def __init__(self, url: str, key: str, service_key: Optional[str] = None):
        self.url = url
        self.key = key
        self.service_key = service_key or key
    
    def _client(self) -> Client:
        return create_client(self.url, self.key)
    
    def _sign_in(self, email: str, password: str) -> AuthTokens:
        response = self._client().auth.sign_in_with_password({
            "email": email,
            "password": password,
        })
        if not response or not response.session or not response.user:
            raise AuthenticationError()
        
        return AuthTokens(
            access_token=response.session.access_token,
            refresh_token=response.session.refresh_token,
            user_id=str(response.user.id),
            email=response.user.email,
        )
    
    async def sign_in(self, email: str, password: str) -> AuthTokens:
        """
        Exchange email + password for tokens.
        
        Raises:
            AuthenticationError: If the credentials are rejected
        """
        try:
            return await asyncio.to_thread(self._sign_in, email, password)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.warning(f"Sign-in failed for {email}: {e}")
            raise AuthenticationError()
    
    async def verify_password(self, email: str, password: str) -> bool:
        """Step-up check before destructive actions"""
        if not password:
            return False
        try:
            await self.sign_in(email, password)
        except AuthenticationError:
            return False
        return True
    
    async def sign_out(self, access_token: Optional[str] = None) -> None:
        """Revoke the session server-side; best effort"""
        if not access_token:
            return
        client = create_client(self.url, self.service_key)
        try:
            await asyncio.to_thread(client.auth.admin.sign_out, access_token)
        except Exception as e:
            logger.warning(f"Sign-out did not complete server-side: {e}")
