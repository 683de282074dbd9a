import os
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional, Dict, List

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import (
    INITIATOR_RATE_LIMIT,
    WEBHOOK_RATE_LIMIT,
    Principal,
    limiter,
    require_donation_editor,
)
from .connectors import CONNECTORS, ConnectorBase
from .database import close_db, get_db, init_db
from .encryption import SecretCodec
from .errors import FundAllocationMismatch, ProviderError, Unauthenticated
from .schemas import ChargeInstruction, DonationCreate, FundAllocation, SubscriptionInstruction
from .services import GivingService
from .webhooks import WebhookService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db(create_tables=os.getenv("DB_CREATE_TABLES", "false").lower() == "true")
    yield
    await close_db()


app = FastAPI(title="Donations Reconciliation API", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

router = APIRouter(prefix="/donate", tags=["donate"])


@lru_cache(maxsize=1)
def get_secret_codec() -> SecretCodec:
    return SecretCodec()


def get_connectors() -> Dict[str, ConnectorBase]:
    return CONNECTORS


def get_default_connector(connectors: Dict[str, ConnectorBase] = Depends(get_connectors)) -> ConnectorBase:
    return connectors["stripe"]


class LogDonationBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    donation: DonationCreate
    fund_data: FundAllocation = Field(..., alias="fundData")


@router.post("/webhook/{provider}")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def webhook(
    provider: str,
    request: Request,
    church_id: str = Query(..., alias="churchId"),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    codec: SecretCodec = Depends(get_secret_codec),
    connectors: Dict[str, ConnectorBase] = Depends(get_connectors),
):
    """
    Receive a provider webhook for a church.

    Accepted, ignored and duplicate events all answer 200 with an empty
    body. Failures answer with a generic error so no payment data leaks.
    """
    connector = connectors.get(provider.lower())
    if not connector:
        raise HTTPException(status_code=400, detail="Provider not supported")

    body = await request.body()
    try:
        result = await WebhookService(db, connector, codec).process(church_id, body, stripe_signature)
        # Commit before answering: a 200 tells the provider not to redeliver
        await db.commit()
    except Unauthenticated as e:
        logger.warning(f"Rejected webhook for church {church_id}: {e}")
        raise HTTPException(status_code=401, detail="Unauthorized")
    except Exception:
        logger.error(f"Webhook processing failed for church {church_id}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    logger.info(
        f"Webhook {result.event_id} ({result.event_type}) for church {church_id}: "
        f"{result.disposition.value}, logged={result.logged}, duplicate={result.duplicate}"
    )
    return {}


@router.post("/log")
async def log_donation(
    body: LogDonationBody,
    x_gateway_secret: Optional[str] = Header(None, alias="X-Gateway-Secret"),
    db: AsyncSession = Depends(get_db),
    codec: SecretCodec = Depends(get_secret_codec),
    connector: ConnectorBase = Depends(get_default_connector),
) -> List[dict]:
    """Record a donation from an offline source holding the church's secret key."""
    service = GivingService(db, connector, codec)
    try:
        _, funds = await service.log(x_gateway_secret, body.donation, body.fund_data)
        await db.commit()
    except Unauthenticated:
        raise HTTPException(status_code=401, detail="Unauthorized")
    except FundAllocationMismatch as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [f.to_dict() for f in funds]


@router.post("/charge")
@limiter.limit(INITIATOR_RATE_LIMIT)
async def charge(
    request: Request,
    body: ChargeInstruction,
    principal: Principal = Depends(require_donation_editor),
    db: AsyncSession = Depends(get_db),
    codec: SecretCodec = Depends(get_secret_codec),
    connector: ConnectorBase = Depends(get_default_connector),
) -> dict:
    """Charge a donor once. The donation is recorded when the provider's webhook arrives."""
    service = GivingService(db, connector, codec)
    try:
        result = await service.charge(principal.church_id, body)
    except Unauthenticated:
        raise HTTPException(status_code=401, detail="Unauthorized")
    except (FundAllocationMismatch, ProviderError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.model_dump()


@router.post("/subscribe")
@limiter.limit(INITIATOR_RATE_LIMIT)
async def subscribe(
    request: Request,
    body: SubscriptionInstruction,
    principal: Principal = Depends(require_donation_editor),
    db: AsyncSession = Depends(get_db),
    codec: SecretCodec = Depends(get_secret_codec),
    connector: ConnectorBase = Depends(get_default_connector),
) -> dict:
    """Start a recurring gift and store its fund split."""
    if body.person_id is None:
        body.person_id = principal.person_id
    service = GivingService(db, connector, codec)
    try:
        subscription, funds = await service.subscribe(principal.church_id, body)
        await db.commit()
    except Unauthenticated:
        raise HTTPException(status_code=401, detail="Unauthorized")
    except (FundAllocationMismatch, ProviderError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "subscription": subscription.to_dict(),
        "funds": [f.to_dict() for f in funds],
    }


@app.get("/health")
async def health(connectors: Dict[str, ConnectorBase] = Depends(get_connectors)):
    return {"ok": True, "connectors": [c.health_check() for c in connectors.values()]}


app.include_router(router)
