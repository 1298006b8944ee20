"""Success envelopes for API responses."""

from typing import Any, Dict


def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    """
    Wrap a payload in the success envelope.

    Args:
        data: Response payload; omitted from the body when None
        message: Human-readable message

    Returns:
        Dict with ``success``, ``message`` and optionally ``data``
    """
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


def created(data: Any = None, message: str = "Resource created successfully") -> Dict[str, Any]:
    return success(data, message)

