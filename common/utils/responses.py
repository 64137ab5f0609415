"""
Standard API response helpers.

Provides a consistent success envelope; errors render through the
exception taxonomy in common.utils.exceptions.

Example:
    from common.utils import success_response

    @router.get("/records")
    async def list_records(records = Depends(get_record_sync)):
        return success_response(records.state().model_dump(mode="json"))
"""

from typing import Any, Optional, Dict


def success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standard success response.

    Args:
        data: The response data (can be dict, list, or any serializable type)
        message: Optional success message

    Returns:
        Dictionary with success=True and optional data/message
    """
    response: Dict[str, Any] = {"success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return response

