import inspect
import os.path
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import (
	Any,
	AsyncIterator,
	Iterator,
	Literal,
	NamedTuple,
	TypeAlias,
	Union,
)

from ..utils.codec import BytesTransform
from ..utils.io import DEFAULT_ENCODING
from .api import ResponseFactory
from .status import HTTP_NO_BODY, HTTP_STATUS

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


# Names that don't follow the `Kebab-Case` convention
HEADER_NAMES: dict[str, str] = {
	"etag": "ETag",
	"te": "TE",
	"www-authenticate": "WWW-Authenticate",
}


def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`. Names come from clients,
	so nothing is cached."""
	key: str = name.lower()
	return HEADER_NAMES.get(key) or "-".join(_.capitalize() for _ in key.split("-"))


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping key information for response/request processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Processing = 0
	Body = 1
	Complete = 2
	BadFormat = 12


HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPRequestError(Exception):
	"""To be raised by handlers to generate an error response, 500 by default."""

	def __init__(
		self,
		message: str,
		status: int | None = None,
		contentType: str | None = None,
	):
		super().__init__(message)
		self.message: str = message
		self.status: int | None = status
		self.contentType: str | None = contentType


# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""Represents a part (or a whole) body as bytes."""

	payload: bytes = b""
	length: int = 0


class HTTPBodyFile(NamedTuple):
	"""Represents an HTTP body from a file, or a slice of it when `length` is given."""

	path: Path
	start: int = 0
	count: int | None = None

	@property
	def length(self) -> int:
		return (
			self.path.stat().st_size - self.start if self.count is None else self.count
		)


class HTTPBodyStream(NamedTuple):
	"""An HTTP body that is generated from a stream of bytes and file slices."""

	stream: Iterator[bytes | HTTPBodyFile]


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile | HTTPBodyStream


class HTTPBodyWriter(ABC):
	"""A generic writer for bodies, the written bytes go through the current
	transform, if any."""

	__slots__ = ["transform"]

	def __init__(self, transform: BytesTransform | None = None) -> None:
		self.transform: BytesTransform | None = transform

	@asynccontextmanager
	async def session(
		self, transform: BytesTransform | None
	) -> AsyncIterator["HTTPBodyWriter"]:
		"""Writes within the session go through the given transform, which is
		flushed on every exit path, even when the body fails half way."""
		previous: BytesTransform | None = self.transform
		self.transform = transform
		try:
			yield self
		finally:
			try:
				await self.flush()
			finally:
				self.transform = previous

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		"""Writes the given type of body."""
		if isinstance(body, bytes):
			return await self._write(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._write(body.payload)
		elif isinstance(body, HTTPBodyFile):
			return await self._writeFile(body.path, body.start, body.count)
		elif isinstance(body, HTTPBodyStream):
			for _ in body.stream:
				if isinstance(_, HTTPBodyFile):
					await self._writeFile(_.path, _.start, _.count)
				else:
					await self._write(_, True)
			return True
		elif body is None:
			return True
		else:
			raise ValueError(f"Unsupported body format: {body}")

	async def writeHead(self, head: bytes) -> bool:
		"""The head is never transformed."""
		return await self._writeBytes(head)

	async def flush(self) -> bool:
		if self.transform:
			chunk = self.transform.flush()
			if chunk:
				await self._writeBytes(chunk)
		return True

	async def _writeFile(
		self, path: Path, start: int = 0, count: int | None = None, size: int = 64_000
	) -> bool:
		left: int | None = count
		with open(path, "rb") as f:
			if start:
				f.seek(start)
			while left is None or left > 0:
				chunk = f.read(size if left is None else min(size, left))
				if not chunk:
					break
				if left is not None:
					left -= len(chunk)
				await self._write(chunk, True)
		return True

	async def _write(self, chunk: bytes, more: bool = False) -> bool:
		return await self._writeBytes(
			self.transform.feed(chunk, more) if self.transform else chunk, more
		)

	@abstractmethod
	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""Represents an HTTP requests, which also acts as a factory for
	responses. Request bodies are read off the connection but not kept."""

	__slots__ = ["protocol", "method", "path", "query", "_headers"]

	def __init__(
		self,
		method: str,
		path: str,
		query: dict[str, str] | None,
		headers: HTTPHeaders,
		protocol: str = "HTTP/1.1",
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.query: dict[str, str] | None = query
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	@property
	def keepAlive(self) -> bool:
		"""Tells if the connection can be reused after this request."""
		connection: str = (self.header("Connection") or "").lower()
		if self.header("Transfer-Encoding"):
			# We don't decode request bodies, so we can't find the next request
			return False
		elif self.protocol == "HTTP/1.0":
			return connection == "keep-alive"
		else:
			return connection != "close"

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			status=status,
			message=message,
			content=content,
			contentType=contentType,
			contentLength=contentLength,
			protocol=self.protocol,
			headers=headers,
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.path}{f'?{self.query}' if self.query else ''} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response."""

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		payload: bytes | None = None
		body: THTTPBody | None = None
		if content is None:
			pass
		elif isinstance(content, str):
			payload = content.encode(DEFAULT_ENCODING)
		elif isinstance(content, bytes):
			payload = content
		elif isinstance(content, Path):
			body = HTTPBodyFile(content.absolute())
			contentLength = os.path.getsize(body.path)
		elif isinstance(content, HTTPBodyFile):
			body = content
			contentLength = content.length
		elif inspect.isgenerator(content):
			body = HTTPBodyStream(content)
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")
		if payload is not None:
			contentLength = len(payload)
			body = HTTPBodyBlob(payload, contentLength)
		res_headers: dict[str, str] = (
			{headername(k): v for k, v in headers.items()} if headers else {}
		)
		if contentType is not None:
			res_headers["Content-Type"] = contentType
		if contentLength is not None:
			res_headers["Content-Length"] = str(contentLength)
		elif (hcl := res_headers.get("Content-Length")) is not None:
			contentLength = int(hcl)
		return HTTPResponse(
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers=HTTPHeaders(
				res_headers,
				contentType=res_headers.get("Content-Type"),
				contentLength=contentLength,
			),
			body=body,
			protocol=protocol,
			# Without a length, only closing the connection tells the client
			# the body is complete.
			shouldClose=body is not None and contentLength is None,
		)

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
		"shouldClose",
		"transform",
	]

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
		shouldClose: bool = False,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body
		self.shouldClose: bool = shouldClose
		# Applied to the body bytes when they are written, see `HTTPBodyWriter.session`
		self.transform: BytesTransform | None = None

	@property
	def hasBody(self) -> bool:
		return self.body is not None and self.status not in HTTP_NO_BODY

	def getHeader(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	def head(self) -> bytes:
		"""Serializes the head as a payload."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines: list[str] = [
			f"{headername(k)}: {v}" for k, v in self.headers.headers.items()
		]
		lines.insert(0, f"{self.protocol} {self.status} {message}")
		lines.append("")
		lines.append("")
		# Header values with non latin-1 characters are not supported
		return "\r\n".join(lines).encode("latin-1")

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body})"


# EOF
