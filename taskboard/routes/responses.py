from fastapi import status
from fastapi.responses import JSONResponse

from ..schemas import ActionResult, ActionSuccess, FailureKind

STATUS_BY_KIND = {
    FailureKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    FailureKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    FailureKind.INVALID_CATEGORY: status.HTTP_400_BAD_REQUEST,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureKind.STORE: status.HTTP_503_SERVICE_UNAVAILABLE,
    FailureKind.UNEXPECTED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def result_response(result: ActionResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Render an operation result as JSON with a matching status code"""
    if isinstance(result, ActionSuccess):
        return JSONResponse(status_code=success_status, content=result.model_dump(mode="json"))

    headers = None
    if result.kind == FailureKind.UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=STATUS_BY_KIND[result.kind],
        content=result.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )
