"""Resolution of a church's decrypted payment gateway keys."""

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .database import GatewayRepository
from .encryption import SecretCodec

logger = logging.getLogger(__name__)


class GatewayKeys(BaseModel):
    """Decrypted credentials for one request. Never logged or persisted."""
    provider: str
    secret_key: str
    webhook_key: str = ""
    public_key: str = ""
    product_id: Optional[str] = None

    def __repr__(self) -> str:
        return f"GatewayKeys(provider={self.provider!r}, product_id={self.product_id!r})"

    __str__ = __repr__


class CredentialService:
    """Loads and decrypts the gateway credentials of a church."""

    def __init__(self, session: AsyncSession, codec: SecretCodec):
        self.gateway_repo = GatewayRepository(session)
        self.codec = codec

    async def resolve(self, church_id: str) -> Optional[GatewayKeys]:
        """Return the church's gateway keys, or None if it has no usable gateway.

        The oldest gateway row is authoritative; a unique constraint on
        (church_id, provider) keeps there from being more than one per
        provider.
        """
        gateways = await self.gateway_repo.load_all(church_id)
        if not gateways:
            logger.info(f"No payment gateway configured for church {church_id}")
            return None

        gateway = gateways[0]
        secret_key = self.codec.decrypt(gateway.private_key)
        if not secret_key:
            logger.warning(f"Gateway for church {church_id} has no usable secret key")
            return None

        return GatewayKeys(
            provider=gateway.provider,
            secret_key=secret_key,
            webhook_key=self.codec.decrypt(gateway.webhook_key),
            public_key=self.codec.decrypt(gateway.public_key),
            product_id=gateway.product_id,
        )
