from fastapi import APIRouter, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from services.udise_client import UpstreamUnavailable, forward_udise_request

router = APIRouter(prefix="/api/udise", tags=["udise"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_udise(path: str, request: Request):
    body = await request.body()
    try:
        upstream = await run_in_threadpool(
            forward_udise_request,
            request.method,
            path,
            request.url.query or None,
            body or None,
            request.headers.get("content-type"),
        )
    except UpstreamUnavailable as exc:
        return JSONResponse(
            status_code=500,
            content={"message": "Internal Server Error", "error": str(exc)},
        )

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.content_type,
    )
