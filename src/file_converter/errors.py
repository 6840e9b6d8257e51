"""Error code registry and the exception hierarchy raised across the service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from fastapi import status


@dataclass(frozen=True)
class ErrorCodeSpec:
    code: str
    zh: str
    en: str
    status: int
    http_status: int


class ErrorRegistry:
    def __init__(self) -> None:
        self._codes: Dict[str, ErrorCodeSpec] = {}

    def register(self, spec: ErrorCodeSpec) -> None:
        if spec.code in self._codes:
            raise ValueError(f"Error code {spec.code} already registered")
        self._codes[spec.code] = spec

    def get(self, code: str) -> ErrorCodeSpec:
        if code not in self._codes:
            raise KeyError(f"Unknown error code: {code}")
        return self._codes[code]

    def to_dict(self) -> Dict[str, ErrorCodeSpec]:
        return dict(self._codes)


ERRORS = ErrorRegistry()


class ServiceError(Exception):
    """Base class for failures that map onto a registered error code."""

    code: str = "ERR_CONVERSION_FAILED"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or ERRORS.get(self.code).en
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    @property
    def spec(self) -> ErrorCodeSpec:
        return ERRORS.get(self.code)

    @property
    def http_status(self) -> int:
        return self.spec.http_status


class BadRequest(ServiceError):
    code = "ERR_BAD_REQUEST"


class UnsupportedFormat(ServiceError):
    code = "ERR_FORMAT_UNSUPPORTED"


class UnsupportedConversion(ServiceError):
    code = "ERR_CONVERSION_UNSUPPORTED"


class FileTooLarge(ServiceError):
    code = "ERR_FILE_TOO_LARGE"


class BatchLimitExceeded(ServiceError):
    code = "ERR_BATCH_LIMIT_EXCEEDED"


class NotFound(ServiceError):
    code = "ERR_NOT_FOUND"


class RateLimited(ServiceError):
    code = "ERR_RATE_LIMITED"


class ConversionFailed(ServiceError):
    code = "ERR_CONVERSION_FAILED"


class ImageConversionFailed(ConversionFailed):
    code = "ERR_IMAGE_CONVERSION_FAILED"


class MediaConversionFailed(ConversionFailed):
    code = "ERR_MEDIA_CONVERSION_FAILED"


class DocumentConversionFailed(ConversionFailed):
    code = "ERR_DOCUMENT_CONVERSION_FAILED"


class OutputMissing(ConversionFailed):
    code = "ERR_OUTPUT_MISSING"


class ConversionTimeout(ConversionFailed):
    code = "ERR_CONVERSION_TIMEOUT"


class DependencyUnavailable(ServiceError):
    code = "ERR_DEPENDENCY_UNAVAILABLE"


_EXCEPTIONS: Dict[str, Type[ServiceError]] = {}


def _register(exc_cls: Type[ServiceError], *, zh: str, en: str, status_code: int, http_status: int) -> None:
    ERRORS.register(ErrorCodeSpec(code=exc_cls.code, zh=zh, en=en, status=status_code, http_status=http_status))
    _EXCEPTIONS[exc_cls.code] = exc_cls


def register_default_errors() -> None:
    _register(BadRequest, zh="请求参数错误", en="Invalid request", status_code=4001,
              http_status=status.HTTP_400_BAD_REQUEST)
    _register(FileTooLarge, zh="单个文件大小超出限制", en="File too large", status_code=4201,
              http_status=status.HTTP_400_BAD_REQUEST)
    _register(BatchLimitExceeded, zh="批量任务超出数量限制", en="Too many files", status_code=4202,
              http_status=status.HTTP_400_BAD_REQUEST)
    _register(UnsupportedFormat, zh="文件格式暂不支持", en="Unsupported format", status_code=4203,
              http_status=status.HTTP_400_BAD_REQUEST)
    _register(UnsupportedConversion, zh="不支持该格式转换", en="Unsupported conversion", status_code=4204,
              http_status=status.HTTP_400_BAD_REQUEST)
    _register(NotFound, zh="资源不存在", en="File not found", status_code=4040,
              http_status=status.HTTP_404_NOT_FOUND)
    _register(RateLimited, zh="请求过于频繁，请稍后重试",
              en="Too many requests from this client, please try again later.", status_code=4290,
              http_status=status.HTTP_429_TOO_MANY_REQUESTS)
    _register(ConversionFailed, zh="转换失败", en="Conversion failed", status_code=5001,
              http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    _register(ImageConversionFailed, zh="图片转换失败", en="Image conversion failed", status_code=5002,
              http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    _register(MediaConversionFailed, zh="音视频转换失败", en="Media conversion failed", status_code=5003,
              http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    _register(DocumentConversionFailed, zh="文档转换失败", en="Document conversion failed", status_code=5004,
              http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    _register(OutputMissing, zh="输出文件不存在", en="Output file not found", status_code=5005,
              http_status=status.HTTP_500_INTERNAL_SERVER_ERROR)
    _register(ConversionTimeout, zh="转换超时", en="Conversion timed out", status_code=5040,
              http_status=status.HTTP_504_GATEWAY_TIMEOUT)
    _register(DependencyUnavailable, zh="依赖组件不可用", en="Required dependency is not available",
              status_code=5030, http_status=status.HTTP_503_SERVICE_UNAVAILABLE)


register_default_errors()


def raise_error(code: str, *, detail: Optional[str] = None, **extra: Any) -> None:
    exc_cls = _EXCEPTIONS.get(code)
    if exc_cls is None:
        raise KeyError(f"Unknown error code: {code}")
    raise exc_cls(detail, **extra)


def error_payload(exc: ServiceError, *, include_details: bool = False) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "error": exc.message,
        "error_code": exc.code,
        "error_status": exc.spec.status,
    }
    body.update(exc.extra)
    if include_details:
        cause = exc.__cause__ or exc.__context__
        if cause is not None:
            body.setdefault("details", f"{cause.__class__.__name__}: {cause}")
    elif "details" in body:
        body.pop("details")
    return body
