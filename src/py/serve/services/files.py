import os
import posixpath
import secrets
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import Iterator, Literal, NamedTuple
from urllib.parse import quote

from ..handler import Handler
from ..http.model import HTTPBodyFile, HTTPRequest, HTTPResponse
from ..resolver import PathResolver
from ..utils.files import contentType
from ..utils.htmpl import H, html
from ..utils.logging import exception

# -----------------------------------------------------------------------------
#
# RANGES
#
# -----------------------------------------------------------------------------


class ByteRange(NamedTuple):
	"""A byte range, `end` is inclusive as in `Content-Range`."""

	start: int
	end: int

	@property
	def length(self) -> int:
		return self.end - self.start + 1

	def contentRange(self, size: int) -> str:
		return f"bytes {self.start}-{self.end}/{size}"


def parseRanges(header: str, size: int) -> list[ByteRange] | None | Literal[False]:
	"""Parses a `Range` header for a resource of the given size. Returns `None`
	when the header is malformed, `False` when no range overlaps the
	resource, and the list of satisfiable ranges otherwise."""
	# SEE: https://httpwg.org/specs/rfc9110.html#field.range
	if not header.startswith("bytes="):
		return None
	ranges: list[ByteRange] = []
	no_overlap: bool = False
	for item in header[6:].split(","):
		item = item.strip()
		if not item:
			continue
		start, sep, end = item.partition("-")
		start, end = start.strip(), end.strip()
		if not sep or not (start or end):
			return None
		if not start:
			# A suffix range `-N` gives the last N bytes
			if not end.isdigit():
				return None
			n = min(int(end), size)
			if n == 0:
				no_overlap = True
				continue
			ranges.append(ByteRange(size - n, size - 1))
		else:
			if not start.isdigit() or (end and not end.isdigit()):
				return None
			i = int(start)
			if i >= size:
				no_overlap = True
				continue
			j = size - 1 if not end else min(int(end), size - 1)
			if j < i:
				return None
			ranges.append(ByteRange(i, j))
	if not ranges:
		return False if no_overlap else None
	return ranges


# -----------------------------------------------------------------------------
#
# VALIDATORS
#
# -----------------------------------------------------------------------------


def etag(stat: os.stat_result) -> str:
	"""A weak validator, the same content may be sent gzipped or not."""
	return f'W/"{stat.st_mtime_ns:x}-{stat.st_size:x}"'


def httpdate(timestamp: float) -> str:
	return formatdate(timestamp, usegmt=True)


def parseHTTPDate(value: str | None) -> float | None:
	if not value:
		return None
	try:
		return parsedate_to_datetime(value).timestamp()
	except (TypeError, ValueError):
		return None


def etagMatches(header: str, tag: str, *, weak: bool) -> bool:
	"""Tells if `tag` is in the list of entity tags of `header`. Weak
	comparison ignores the `W/` prefix, strong comparison never matches
	weak tags."""
	# SEE: https://httpwg.org/specs/rfc9110.html#entity.tag.comparison
	for candidate in (_.strip() for _ in header.split(",")):
		if candidate == "*":
			return True
		if weak:
			if candidate.removeprefix("W/") == tag.removeprefix("W/"):
				return True
		elif not candidate.startswith("W/") and not tag.startswith("W/"):
			if candidate == tag:
				return True
	return False


# -----------------------------------------------------------------------------
#
# FILE SERVICE
#
# -----------------------------------------------------------------------------


class FileService(Handler):
	"""Serves files from the local filesystem, with content type inference,
	conditional requests, byte ranges and directory listings."""

	METHODS: list[str] = ["GET", "HEAD"]

	def __init__(self, resolver: PathResolver):
		super().__init__()
		self.resolver: PathResolver = resolver

	@property
	def root(self) -> Path:
		return self.resolver.root

	def process(self, request: HTTPRequest) -> HTTPResponse:
		if request.method not in self.METHODS:
			return request.notAllowed(self.METHODS)
		path: str = request.path
		if not path.startswith("/") or ".." in path.split("/"):
			return request.badRequest("invalid URL path\n")
		local_path: Path = self.resolver.resolve(path)
		if not self.resolver.contains(local_path):
			return request.notAuthorized()
		try:
			stat = local_path.stat()
			if local_path.is_dir():
				return self.serveDirectory(request, path, local_path)
			elif path.endswith("/") and path != "/":
				return self.localRedirect(
					request, f"../{posixpath.basename(path.rstrip('/'))}"
				)
			else:
				return self.serveFile(request, local_path, stat)
		except (FileNotFoundError, NotADirectoryError):
			return request.notFound()
		except PermissionError:
			return request.notAuthorized()
		except OSError as e:
			exception(e, f"Could not serve {local_path}")
			return request.fail()

	def localRedirect(self, request: HTTPRequest, location: str) -> HTTPResponse:
		"""Redirects relatively to the current path, keeping the query."""
		if request.query:
			location += "?" + "&".join(
				f"{quote(k)}={quote(v)}" if v else quote(k)
				for k, v in request.query.items()
			)
		return request.redirect(location, permanent=True)

	def serveDirectory(
		self, request: HTTPRequest, path: str, local_path: Path
	) -> HTTPResponse:
		if not path.endswith("/"):
			return self.localRedirect(request, f"{posixpath.basename(path)}/")
		index_path: Path = local_path / self.resolver.index
		if index_path.is_file():
			return self.serveFile(request, index_path, index_path.stat())
		else:
			return self.renderDirectory(request, path, local_path)

	def renderDirectory(
		self, request: HTTPRequest, path: str, local_path: Path
	) -> HTTPResponse:
		entries: list[str] = sorted(
			f"{_.name}/" if _.is_dir() else _.name for _ in local_path.iterdir()
		)
		page = H.html(
			H.head(
				H.meta(charset="utf-8"),
				H.meta(name="viewport", content="width=device-width"),
				H.title(path),
			),
			H.body(
				H.pre(*[[H.a(name, href=quote(name)), "\n"] for name in entries]),
			),
		)
		return request.respondHTML("".join(html(page, doctype="html")))

	def serveFile(
		self, request: HTTPRequest, local_path: Path, stat: os.stat_result
	) -> HTTPResponse:
		# Fails early with a `PermissionError` on unreadable files
		with open(local_path, "rb"):
			pass
		size: int = stat.st_size
		tag: str = etag(stat)
		headers: dict[str, str] = {
			"Last-Modified": httpdate(stat.st_mtime),
			"ETag": tag,
			"Accept-Ranges": "bytes",
		}
		precondition = self.checkPreconditions(request, stat, tag)
		if precondition == 304:
			return request.notModified(headers)
		elif precondition == 412:
			return request.error(412)
		content_type: str = contentType(local_path)
		range_header: str | None = request.header("Range")
		if range_header and self.checkIfRange(request, stat, tag):
			ranges = parseRanges(range_header, size)
			if ranges is False:
				headers["Content-Range"] = f"bytes */{size}"
				return request.error(416, headers=headers)
			elif ranges is None:
				# Malformed range headers are ignored
				pass
			elif sum(_.length for _ in ranges) > size:
				# Ranges that add up to more than the file are likely an
				# attack, we send the whole file instead.
				pass
			elif len(ranges) == 1:
				r = ranges[0]
				headers["Content-Range"] = r.contentRange(size)
				return request.respond(
					HTTPBodyFile(local_path, r.start, r.length),
					contentType=content_type,
					status=206,
					headers=headers,
				)
			else:
				return self.serveRanges(
					request, local_path, size, content_type, ranges, headers
				)
		return request.respondFile(local_path, headers=headers, contentType=content_type)

	def serveRanges(
		self,
		request: HTTPRequest,
		local_path: Path,
		size: int,
		content_type: str,
		ranges: list[ByteRange],
		headers: dict[str, str],
	) -> HTTPResponse:
		"""Sends the ranges as a `multipart/byteranges` body."""
		boundary: str = secrets.token_hex(15)
		parts: list[tuple[bytes, ByteRange]] = []
		for i, r in enumerate(ranges):
			# Parts after the first one start on a new line
			eol: str = "\r\n" if i else ""
			head: str = (
				f"{eol}--{boundary}\r\n"
				f"Content-Type: {content_type}\r\n"
				f"Content-Range: {r.contentRange(size)}\r\n\r\n"
			)
			parts.append((head.encode("latin-1"), r))
		tail: bytes = f"\r\n--{boundary}--\r\n".encode("latin-1")
		length: int = sum(len(h) + r.length for h, r in parts) + len(tail)

		def stream() -> Iterator[bytes | HTTPBodyFile]:
			for head, r in parts:
				yield head
				yield HTTPBodyFile(local_path, r.start, r.length)
			yield tail

		return request.respond(
			stream(),
			contentType=f"multipart/byteranges; boundary={boundary}",
			contentLength=length,
			status=206,
			headers=headers,
		)

	def checkPreconditions(
		self, request: HTTPRequest, stat: os.stat_result, tag: str
	) -> int | None:
		"""Returns the status (304 or 412) when a precondition stops the
		request from being served."""
		# SEE: https://httpwg.org/specs/rfc9110.html#precedence
		is_read: bool = request.method in ("GET", "HEAD")
		if (if_match := request.header("If-Match")) is not None:
			if not etagMatches(if_match, tag, weak=False):
				return 412
		elif (
			since := parseHTTPDate(request.header("If-Unmodified-Since"))
		) is not None:
			if int(stat.st_mtime) > since:
				return 412
		if (if_none_match := request.header("If-None-Match")) is not None:
			if etagMatches(if_none_match, tag, weak=True):
				return 304 if is_read else 412
		elif is_read and (
			since := parseHTTPDate(request.header("If-Modified-Since"))
		) is not None:
			if int(stat.st_mtime) <= since:
				return 304
		return None

	def checkIfRange(
		self, request: HTTPRequest, stat: os.stat_result, tag: str
	) -> bool:
		"""Tells if the range can be honoured given the `If-Range` header."""
		if_range: str | None = request.header("If-Range")
		if not if_range:
			return True
		elif if_range.startswith('"') or if_range.startswith("W/"):
			return etagMatches(if_range, tag, weak=False)
		else:
			since = parseHTTPDate(if_range)
			return since is not None and int(stat.st_mtime) == int(since)

	def __repr__(self) -> str:
		return f"FileService({self.root})"


# EOF
