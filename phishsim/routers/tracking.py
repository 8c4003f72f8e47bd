"""
Public Tracking Endpoints
=========================
Unauthenticated routes reached from inside a simulation email.

- /open/{token}     open beacon; identical response whether or not the token is valid
- /t/{token}        click tracking, redirects to the landing page
- /landing/{token}  decoy credential page
- /submit           records that credentials were entered (never the password)
"""

import base64
from pathlib import Path
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import ClickMeta, OpenMeta, SubmitMeta, SubmitRequest, SubmitResponse
from ..services import tracking

router = APIRouter(tags=["Tracking"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

PIXEL_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

DISCLOSURE_MESSAGE = "This was a security awareness test"
DISCLOSURE_DETAILS = (
    "You have submitted credentials to a simulated phishing page. In a real attack, "
    "your credentials would now be compromised. Please be cautious of suspicious emails "
    "and always verify the URL before entering sensitive information."
)


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.get("/open/{token}")
async def track_open(token: str, request: Request, db: Session = Depends(get_db)):
    """
    Email open beacon.
    Always returns the same pixel so the response never reveals whether the token is valid.
    """
    tracking.record_event(db, token, OpenMeta(
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    ))

    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=PIXEL_HEADERS)


@router.get("/t/{token}")
async def track_click(token: str, request: Request, db: Session = Depends(get_db)):
    """Record a click and redirect to the landing page."""
    event = tracking.record_event(db, token, ClickMeta(
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    ))
    if event is None:
        raise HTTPException(status_code=404, detail="Invalid link")

    return RedirectResponse(url=f"/landing/{token}", status_code=302)


@router.get("/landing/{token}", response_class=HTMLResponse)
async def landing_page(token: str, request: Request, db: Session = Depends(get_db)):
    """Decoy credential page for a valid token."""
    target = tracking.resolve_target(db, token)
    if target is None:
        raise HTTPException(status_code=404, detail="Invalid link")

    return templates.TemplateResponse(request, "landing.html", {
        "token": token,
        "name": target.name,
    })


@router.post("/submit", response_model=SubmitResponse)
async def track_submit(data: SubmitRequest, request: Request, db: Session = Depends(get_db)):
    """
    Record a credential submission.
    Only the username and the password's length in UTF-8 bytes are kept.
    """
    event = tracking.record_event(db, data.token, SubmitMeta(
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        username=data.username,
        password_length=len(data.password.encode("utf-8")),
    ))
    if event is None:
        raise HTTPException(status_code=404, detail="Invalid token")

    return SubmitResponse(
        success=True,
        message=DISCLOSURE_MESSAGE,
        details=DISCLOSURE_DETAILS,
    )
