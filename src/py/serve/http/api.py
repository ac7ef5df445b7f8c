from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Generic, Iterator, TypeVar

from ..utils.files import contentType as getContentType
from .status import HTTP_STATUS

T = TypeVar("T")

# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------

# --
# == HTTP Request Response API
#
# Defines the high level API functions (orthogonal to the underlying model)
# to create responses from a request.


class ResponseFactory(ABC, Generic[T]):
	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = "text/plain; charset=utf-8",
		headers: dict[str, str] | None = None,
	) -> T:
		message = HTTP_STATUS.get(status, "Server Error")
		return self.respond(
			content=f"{status} {message}\n" if content is None else content,
			contentType=contentType,
			status=status,
			message=message,
			headers=headers,
		)

	def badRequest(self, content: str | None = None) -> T:
		return self.error(400, content)

	def notAuthorized(self, content: str | None = None, *, status: int = 403) -> T:
		return self.error(status, content)

	def notFound(self, content: str = "404 page not found\n") -> T:
		return self.error(404, content)

	def notAllowed(self, allowed: list[str]) -> T:
		return self.error(405, headers={"Allow": ", ".join(allowed)})

	def fail(self, content: str | None = None, *, status: int = 500) -> T:
		return self.error(status, content)

	def redirect(self, url: str, permanent: bool = False) -> T:
		# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/Redirections
		return self.respondEmpty(
			status=301 if permanent else 302, headers={"Location": str(url)}
		)

	def notModified(self, headers: dict[str, str] | None = None) -> T:
		return self.respondEmpty(304, headers)

	def respondText(
		self,
		content: str | bytes,
		contentType: str = "text/plain; charset=utf-8",
		status: int = 200,
	) -> T:
		return self.respond(content=content, contentType=contentType, status=status)

	def respondHTML(self, html: str | bytes | Iterator[bytes], status: int = 200) -> T:
		return self.respond(
			content=html, contentType="text/html; charset=utf-8", status=status
		)

	def respondFile(
		self,
		path: Path | str,
		headers: dict[str, str] | None = None,
		status: int = 200,
		contentType: str | None = None,
	) -> T:
		p: Path = path if isinstance(path, Path) else Path(path)
		content_type: str = contentType or getContentType(p)
		base_headers = {"Content-Type": content_type}
		return self.respond(
			content=p,
			status=status,
			headers=base_headers | headers if headers else base_headers,
		)

	def respondEmpty(self, status: int, headers: dict[str, str] | None = None) -> T:
		return self.respond(content=None, status=status, headers=headers)


# EOF
