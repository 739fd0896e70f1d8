"""
Shared FastAPI dependencies.

Authentication is handled upstream; the caller's identity arrives in the
X-User-Id header and scopes every query.
"""

from fastapi import Header, HTTPException, Request


def get_user_id(x_user_id: str = Header(None, alias="X-User-Id")) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def get_orchestrator(request: Request):
    return request.app.state.orchestrator


def get_gateway(request: Request):
    return request.app.state.gateway


def get_storage(request: Request):
    return request.app.state.storage


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
