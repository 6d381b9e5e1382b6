"""The /download endpoint: info, format probe and streamed download."""
from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from starlette.background import BackgroundTask

from ytgrab.core.logging import get_logger, safe_url
from ytgrab.models.download import ErrorResponse, InfoResponse
from ytgrab.models.media import RetrievalDecision, RetrievalRequest
from ytgrab.services.download_service import DownloadService
from ytgrab.services.errors import FormatUnavailableError, InputError
from ytgrab.services.naming import content_disposition
from ytgrab.services.strategies import Retrieval
from ytgrab.services.url_normalizer import normalize_url

logger = get_logger(__name__)

router = APIRouter()

COOKIE_HEADER = "x-youtube-cookie"
MAX_URL_LENGTH = 2048
MAX_TOKEN_LENGTH = 64


def get_download_service(request: Request) -> DownloadService:
    """Service built once in the application lifespan."""
    return request.app.state.download_service


def _canonical_url(url: str | None) -> str:
    canonical = normalize_url(url)
    if canonical is None:
        raise InputError("Missing url")
    if url is not None and len(url.strip()) > MAX_URL_LENGTH:
        raise InputError("Invalid url", f"url exceeds {MAX_URL_LENGTH} characters")
    return canonical


def _format_token(token: str) -> str:
    token = token.strip() or "best"
    if len(token) > MAX_TOKEN_LENGTH:
        raise FormatUnavailableError(detail=f"format exceeds {MAX_TOKEN_LENGTH} characters")
    return token


def _to_response(decision: RetrievalDecision, retrieval: Retrieval) -> Response:
    headers = {
        "Content-Disposition": content_disposition(retrieval.filename),
        "X-Mode": decision.mode,
    }

    if retrieval.redirect_url:
        return RedirectResponse(
            retrieval.redirect_url,
            status_code=status.HTTP_302_FOUND,
            headers=headers,
        )

    if retrieval.content_length is not None:
        headers["Content-Length"] = str(retrieval.content_length)
    if retrieval.content_range:
        headers["Content-Range"] = retrieval.content_range

    stream = retrieval.stream
    if stream is None:
        raise RuntimeError(f"Retrieval for {retrieval.filename} has neither stream nor redirect")

    return StreamingResponse(
        stream,
        status_code=retrieval.status_code,
        media_type=retrieval.content_type,
        headers=headers,
        # Releases the producer even if the body was never iterated
        background=BackgroundTask(stream.cancel),
    )


@router.get(
    "/download",
    summary="Video info or download",
    description=(
        "With `mode=info`, return title, thumbnail and available qualities. "
        "Otherwise stream the video or audio in the requested `format`."
    ),
    responses={
        200: {"description": "Info JSON or media stream", "model": InfoResponse},
        302: {"description": "Redirect to the upstream media URL (fast redirect mode)"},
        400: {"description": "Missing url", "model": ErrorResponse},
        422: {"description": "Format unavailable", "model": ErrorResponse},
        500: {"description": "Every retrieval tier failed", "model": ErrorResponse},
    },
)
async def download(
    request: Request,
    url: str | None = Query(default=None, description="Video page URL"),
    mode: str = Query(default="", description="'info' for metadata only"),
    format_token: str = Query(
        default="best",
        alias="format",
        description="best | <quality label> | audio | audio:<mp3|wav|m4a|opus|flac>",
    ),
    cookie: str | None = Query(default=None, description="Cookie forwarded upstream"),
    service: DownloadService = Depends(get_download_service),
) -> Response:
    """Return video info or stream the requested format."""
    canonical = _canonical_url(url)

    if mode == "info":
        metadata = await service.info(canonical)
        info = InfoResponse(
            raw_title=metadata.title,
            thumbnail=metadata.thumbnail_url,
            available_qualities=metadata.available_qualities(),
            limited=metadata.limited,
        )
        return JSONResponse(content=info.model_dump(by_alias=True))

    retrieval_request = RetrievalRequest(
        canonical_url=canonical,
        requested_token=_format_token(format_token),
        cookie=cookie or request.headers.get(COOKIE_HEADER),
        range=request.headers.get("range"),
    )
    logger.info(f"Download requested: {safe_url(canonical)} format={retrieval_request.requested_token}")
    decision, retrieval = await service.retrieve(retrieval_request)
    return _to_response(decision, retrieval)


@router.head(
    "/download",
    summary="Probe a format",
    description="Report via `X-Mode` which retrieval path a download would take.",
    responses={
        200: {"description": "`X-Mode` header is audio, muxed or merge"},
        400: {"description": "Missing url"},
        422: {"description": "Format unavailable"},
    },
)
async def probe_download(
    url: str | None = Query(default=None),
    format_token: str = Query(default="best", alias="format"),
    service: DownloadService = Depends(get_download_service),
) -> Response:
    """Decide without retrieving."""
    canonical = _canonical_url(url)
    _, decision = await service.decide(
        RetrievalRequest(canonical_url=canonical, requested_token=_format_token(format_token))
    )
    return Response(status_code=status.HTTP_200_OK, headers={"X-Mode": decision.mode})
