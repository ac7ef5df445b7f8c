from ..handler import Handler, HandlerWrapper
from ..http.model import HTTPRequest, HTTPResponse
from ..utils.codec import BytesTransform, ChunkedEncoder, GZipEncoder, PipelineCodec

# Tokens of `Accept-Encoding` that allow a gzip response
GZIP_TOKENS: set[str] = {"gzip", "x-gzip"}


def accepts(header: str | None, tokens: set[str] = GZIP_TOKENS) -> bool:
	"""Tells if the `Accept-Encoding` header allows one of the tokens. An
	explicit token decides over the `*` wildcard, which is only used when
	no token is listed."""
	# SEE: https://httpwg.org/specs/rfc9110.html#field.accept-encoding
	explicit: float | None = None
	wildcard: float | None = None
	for item in (header or "").split(","):
		coding, _, params = item.partition(";")
		coding = coding.strip().lower()
		if coding not in tokens and coding != "*":
			continue
		quality: float = 1.0
		for param in params.split(";"):
			key, _, value = param.strip().partition("=")
			if key.lower() == "q":
				try:
					quality = float(value)
				except ValueError:
					quality = 0.0
		if coding == "*":
			wildcard = quality if wildcard is None else max(wildcard, quality)
		else:
			explicit = quality if explicit is None else max(explicit, quality)
	if explicit is not None:
		return explicit > 0
	return wildcard is not None and wildcard > 0


class GZipHandler(HandlerWrapper):
	"""Compresses the response bodies of the wrapped handler when the client
	accepts gzip. The handler itself is unchanged, only the bytes written
	out are transformed."""

	def __init__(self, handler: Handler, *, level: int = 6) -> None:
		super().__init__(handler)
		self.level: int = level

	def process(self, request: HTTPRequest) -> HTTPResponse:
		if not accepts(request.header("Accept-Encoding")):
			return self.handler.process(request)
		response: HTTPResponse = self.handler.process(request)
		vary: str | None = response.getHeader("Vary")
		response.setHeader(
			"Vary", f"{vary}, Accept-Encoding" if vary else "Accept-Encoding"
		)
		# Responses without a body (304, redirects) or already encoded are
		# left as they are.
		if not response.hasBody or response.getHeader("Content-Encoding"):
			return response
		response.setHeader("Content-Encoding", "gzip")
		# The compressed length is only known once everything is written
		response.setHeader("Content-Length", None)
		response.headers = response.headers._replace(contentLength=None)
		if response.protocol == "HTTP/1.1":
			response.setHeader("Transfer-Encoding", "chunked")
		else:
			response.shouldClose = True
		response.transform = self.encoder(response)
		return response

	def encoder(self, response: HTTPResponse) -> BytesTransform:
		"""Creates the compression session for one response."""
		gzip = GZipEncoder(self.level)
		if response.protocol == "HTTP/1.1":
			return PipelineCodec([gzip, ChunkedEncoder()])
		else:
			return gzip


# EOF
