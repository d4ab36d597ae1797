"""Router that decodes multipart/form-data bodies into files before calling handlers.

Robyn hands over the request body fully buffered, so the HTTP layer holds each
upload in memory. The decoder still writes it out in `packet_size` pieces, fed
from that buffer as if it were a stream.
"""

import asyncio
import inspect
import io
from collections.abc import Callable
from concurrent.futures import Executor
from functools import partial, wraps
from typing import Any
from uuid import uuid4

import orjson
from asgi_correlation_id import correlation_id
from pydantic import BaseModel
from robyn import Request, Response, SubRouter, status_codes

from multipart_downloader.core.logger import LogIcon, logger
from multipart_downloader.core.settings import settings as st
from multipart_downloader.models.core import DownloadMode, UploadedFiles, UploadErrorResponse
from multipart_downloader.multipart.errors import DownloadError, ErrorKind
from multipart_downloader.multipart.session import Downloader
from multipart_downloader.multipart.settings import DownloadSettings
from multipart_downloader.multipart.sources import AsyncChunkedSource, TimeoutSource

UPLOAD_ENDPOINTS: dict[str, DownloadMode] = {}

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CONTENT_TYPE: status_codes.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    ErrorKind.BOUNDARY_MISSING: status_codes.HTTP_400_BAD_REQUEST,
    ErrorKind.HEADER_MALFORMED: status_codes.HTTP_400_BAD_REQUEST,
    ErrorKind.STREAM_ERROR: status_codes.HTTP_400_BAD_REQUEST,
    ErrorKind.OPERATION_TIMEOUT: status_codes.HTTP_408_REQUEST_TIMEOUT,
    ErrorKind.CANNOT_OPEN_DESTINATION: status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.PATH_RESOLUTION_FAILED: status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
}


def parse_endpoint_signature(sig: inspect.Signature) -> set[str]:
    """Names of parameters annotated with UploadedFiles."""
    return {name for name, param in sig.parameters.items() if param.annotation is UploadedFiles}


def request_body(request: Request) -> bytes:
    body = request.body
    return body.encode() if isinstance(body, str) else bytes(body or b"")


def request_content_type(request: Request) -> str:
    return request.headers.get("content-type") or request.headers.get("Content-Type") or ""


def json_response(payload: Any, status_code: int = status_codes.HTTP_200_OK) -> Response:
    return Response(
        status_code=status_code,
        headers={"content-type": "application/json"},
        description=orjson.dumps(payload).decode(),
    )


def error_response(error: DownloadError) -> Response:
    payload = UploadErrorResponse(error=error.kind, detail=str(error), files=[str(path) for path in error.paths])
    status_code = ERROR_STATUS.get(error.kind, status_codes.HTTP_400_BAD_REQUEST)
    return json_response(payload.model_dump(mode="json"), status_code)


async def download_request_files(
    request: Request,
    mode: DownloadMode,
    download_settings: DownloadSettings,
    executor: Executor | None = None,
) -> UploadedFiles:
    """Decode the request body into files using the endpoint's download mode."""
    content_type = request_content_type(request)
    body = request_body(request)

    match mode:
        case DownloadMode.BLOCKING:
            downloader = Downloader(io.BytesIO(body))
            loop = asyncio.get_running_loop()
            paths = await loop.run_in_executor(
                executor, partial(downloader.download, content_type, download_settings)
            )
        case _:
            source = TimeoutSource(AsyncChunkedSource([body]), download_settings.operation_timeout)
            paths = await Downloader(source).download_async(content_type, download_settings)
    return UploadedFiles(paths)


def parse_response(result: Any) -> Response:
    """Convert handler result to Response."""
    match result:
        case Response():
            return result
        case BaseModel():
            return json_response(result.model_dump(mode="json"))
        case dict() | list():
            return json_response(result)
        case _:
            return Response(status_code=status_codes.HTTP_200_OK, headers={}, description=str(result))


def _worker_pool(global_dependencies: Any) -> Executor | None:
    state = (global_dependencies or {}).get("state")
    return state.get("worker_pool") if state is not None else None


ROUTE_METHODS = ("get", "post", "put", "delete", "patch")


def _create_method_wrapper(original_method: Callable, router_prefix: str = "") -> Callable:
    @wraps(original_method)
    def method_wrapper(*args, mode: DownloadMode = DownloadMode.SUSPENDING, **kwargs) -> Callable:
        endpoint = args[0] if args else kwargs.get("endpoint", "")
        decorator = original_method(*args, **kwargs)

        def handler_decorator(handler: Callable) -> Callable:
            sig = inspect.signature(handler)
            file_params = parse_endpoint_signature(sig)
            has_request_param = "request" in sig.parameters
            has_dependencies_param = "global_dependencies" in sig.parameters

            if file_params:
                UPLOAD_ENDPOINTS[f"{router_prefix}{endpoint}".replace("//", "/")] = mode

            @wraps(handler)
            async def wrapped_handler(request: Request, global_dependencies=None, **h_kwargs):
                if file_params:
                    token = correlation_id.set(uuid4().hex)
                    try:
                        logger.info("Upload received", icon=LogIcon.UPLOAD, endpoint=endpoint, mode=mode)
                        files = await download_request_files(
                            request, mode, st.download_settings(), _worker_pool(global_dependencies)
                        )
                    except DownloadError as ex:
                        return error_response(ex)
                    finally:
                        correlation_id.reset(token)
                    for param_name in file_params:
                        h_kwargs[param_name] = files

                # Pass request and dependencies only to handlers that declared them
                if has_request_param:
                    h_kwargs["request"] = request
                if has_dependencies_param:
                    h_kwargs["global_dependencies"] = global_dependencies

                result = await handler(**h_kwargs)
                return parse_response(result)

            # Robyn injects by parameter name: always ask for request and global dependencies
            new_params = [
                inspect.Parameter("request", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=Request),
                inspect.Parameter("global_dependencies", inspect.Parameter.POSITIONAL_OR_KEYWORD, default=None),
            ]
            for name, param in sig.parameters.items():
                if name in ("request", "global_dependencies") or name in file_params:
                    continue
                new_params.append(param)

            wrapped_handler.__signature__ = sig.replace(parameters=new_params)  # type: ignore[attr-defined]
            return decorator(wrapped_handler)

        return handler_decorator

    return method_wrapper


class Router(SubRouter):
    """SubRouter that hands handlers the files decoded from their upload body."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        prefix = kwargs.get("prefix", "")
        for name in ROUTE_METHODS:
            setattr(self, name, _create_method_wrapper(getattr(self, name), prefix))
