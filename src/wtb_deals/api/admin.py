"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from wtb_deals.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/deals/{deal_id}", dependencies=[Depends(require_admin)])
async def deal_detail(deal_id: str, request: Request) -> dict[str, object]:
    """Return the stored deal record."""
    container: AppContainer = request.app.state.container
    deal = container.deal_repository.get(deal_id)
    if deal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return {"deal": asdict(deal)}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request) -> dict[str, object]:
    """Return live session counts."""
    container: AppContainer = request.app.state.container
    return {"sessions": container.session_store.counts()}


@router.post("/expiry/sweep", dependencies=[Depends(require_admin)])
async def run_expiry_sweep(request: Request) -> dict[str, object]:
    """Run one expiry sweep, e.g. from an external cron."""
    container: AppContainer = request.app.state.container
    report = await container.expiry_sweeper.sweep()
    return report.to_dict()
