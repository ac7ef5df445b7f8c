from typing import Iterator, Literal
from urllib.parse import unquote
from ..utils.io import LineParser
from .model import (
	HTTPRequest,
	HTTPRequestLine,
	HTTPHeaders,
	HTTPAtom,
	HTTPProcessingStatus,
	headername,
)


class MessageParser:
	"""Parses an HTTP request line."""

	__slots__ = ["line", "value"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser(limit=8_192)
		self.value: HTTPRequestLine | None = None

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			# Empty lines before the request line are skipped
			# SEE: https://httpwg.org/specs/rfc9112.html#message.parsing
			self.line.reset()
			return None, read
		ln = line.decode("latin-1")
		parts: list[str] = ln.split(" ")
		if len(parts) != 3 or not parts[2].startswith("HTTP/"):
			raise ValueError(f"Malformed request line: {ln!r}")
		method, target, protocol = parts
		p: list[str] = target.split("?", 1)
		self.value = HTTPRequestLine(
			method.upper(), unquote(p[0]), p[1] if len(p) > 1 else "", protocol
		)
		return True, read

	def __str__(self) -> str:
		return f"MessageParser({self.value})"


class HeadersParser:
	__slots__ = ["headers", "contentType", "contentLength", "line"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the next start offset. When the value is `None`, no
		header has been extracted, when the value is `False` it's an empty
		line, and when the value is a string, the header was added."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif line:
			self.line.reset()
			ln: str = line.decode("latin-1")
			i = ln.find(":")
			if i == -1:
				raise ValueError(f"Malformed header line: {ln!r}")
			h = ln[:i].lower().strip()
			v = ln[i + 1 :].strip()
			if h == "content-length":
				try:
					self.contentLength = int(v)
				except ValueError:
					raise ValueError(f"Malformed Content-Length: {v!r}")
				if self.contentLength < 0:
					raise ValueError(f"Negative Content-Length: {v!r}")
			elif h == "content-type":
				self.contentType = v
			n: str = headername(h)
			# Repeated headers are combined
			# SEE: https://httpwg.org/specs/rfc9110.html#field.lines
			self.headers[n] = f"{self.headers[n]}, {v}" if n in self.headers else v
			return n, read
		else:
			# An empty line denotes the end of headers
			self.line.reset()
			return False, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodyLengthParser:
	"""Skips over the body of a request with ContentLength set, files
	are only ever read so the body is discarded."""

	__slots__ = ["expected", "read"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		left: int = len(chunk) - start
		to_read: int = min(left, self.expected - self.read)
		self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful HTTP request parser, requests can span many chunks and a
	chunk can hold many (pipelined) requests."""

	def __init__(self) -> None:
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.bodyLength: BodyLengthParser = BodyLengthParser()
		self.parser: MessageParser | HeadersParser | BodyLengthParser = self.message
		self.requestLine: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None

	def reset(self) -> "HTTPParser":
		self.message.reset()
		self.headers.reset()
		self.bodyLength.reset()
		self.parser = self.message
		self.requestLine = None
		self.requestHeaders = None
		return self

	def request(self) -> HTTPRequest:
		line = self.requestLine
		headers = self.requestHeaders
		assert line is not None and headers is not None
		self.parser = self.message.reset()
		self.bodyLength.reset()
		self.requestLine = None
		self.requestHeaders = None
		return HTTPRequest(
			method=line.method,
			path=line.path,
			query=parseQuery(line.query),
			headers=headers,
			protocol=line.protocol,
		)

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			# When a chunk is partially read, the underlying parser keeps a
			# buffer up until it is flushed.
			try:
				ln, read = self.parser.feed(chunk, offset)
			except ValueError:
				self.reset()
				yield HTTPProcessingStatus.BadFormat
				return
			offset += read
			if ln is None:
				continue
			elif self.parser is self.message:
				self.requestLine = self.message.flush()
				self.requestHeaders = None
				if self.requestLine is not None:
					yield self.requestLine
					self.parser = self.headers
			elif self.parser is self.headers:
				if ln is False:
					headers = self.headers.flush()
					self.requestHeaders = headers
					yield headers
					# Requests without a length have no body, we don't
					# support chunked requests bodies.
					if not headers.contentLength:
						yield self.request()
						yield HTTPProcessingStatus.Complete
					else:
						self.parser = self.bodyLength.reset(headers.contentLength)
						yield HTTPProcessingStatus.Body
			elif self.parser is self.bodyLength:
				yield self.request()
				yield HTTPProcessingStatus.Complete
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")


def parseQuery(text: str) -> dict[str, str]:
	res: dict[str, str] = {}
	for item in text.split("&"):
		if not item:
			continue
		kv = item.split("=", 1)
		if len(kv) == 1:
			res[unquote(item)] = ""
		else:
			res[unquote(kv[0])] = unquote(kv[1])
	return res


# EOF
