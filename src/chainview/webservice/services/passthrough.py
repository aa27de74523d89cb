"""Render node responses for HTTP callers without reinterpreting them."""

from fastapi.responses import JSONResponse, Response

from chainview.upstream.node_client import NodeResponse


def node_passthrough(response: NodeResponse) -> Response:
    """Return the node's status and body as received."""
    if response.text is not None:
        return Response(content=response.text, status_code=response.status, media_type=response.content_type)
    return JSONResponse(status_code=response.status, content=response.body)
