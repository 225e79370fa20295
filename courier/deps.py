from fastapi import Header, HTTPException, Request

from courier.exceptions import OrderValidationError
from courier.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_api_key(request: Request, x_api_key: str = Header(None)):
    expected = request.app.state.services.api_key
    if not expected:
        return
    if not x_api_key or x_api_key != expected:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": 'ApiKey realm="courier" header="x-api-key"'},
        )


def bad_request(e: OrderValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": e.message, "fields": e.errors})
