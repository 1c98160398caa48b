"""Map service result dicts onto HTTP responses."""
from fastapi.responses import JSONResponse


def result_response(result: dict, success_status: int = 200, error_status: int = 400):
    """{"success": True, ...} -> success_status; failures -> error_status (404 if not_found)."""
    if result.get("success"):
        if success_status == 200:
            return result
        return JSONResponse(status_code=success_status, content=result)

    content = {k: v for k, v in result.items() if k != "not_found"}
    status = 404 if result.get("not_found") else error_status
    return JSONResponse(status_code=status, content=content)
