from serve.http.model import (
	HEADER_NAMES,
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	headername,
)
from serve.http.parser import HTTPParser, parseQuery
from serve.utils.io import LineParser

REQUEST: bytes = b"GET /time/5 HTTP/1.1\r\nHost: 127.0.0.1\r\nConnection: close\r\n\r\n"


def feedAll(parser: HTTPParser, *chunks: bytes) -> list:
	return [atom for chunk in chunks for atom in parser.feed(chunk)]


def requests(atoms: list) -> list[HTTPRequest]:
	return [_ for _ in atoms if isinstance(_, HTTPRequest)]


def test_line_parser_across_chunks():
	parser = LineParser()
	lines: list[bytes] = []
	for chunk in [
		b"GET /time/5 HTTP/1.1\r\nHost: 127.0.0.1\r\nConnection: close",
		b"\r\n\r",
		b"\n",
	]:
		offset: int = 0
		while offset < len(chunk):
			line, read = parser.feed(chunk, offset)
			offset += read
			if line is None:
				break
			lines.append(line)
			parser.reset()
	assert lines == REQUEST.split(b"\r\n")[:-1]


def test_line_parser_limit():
	parser = LineParser(limit=16)
	try:
		parser.feed(b"x" * 32)
	except ValueError:
		pass
	else:
		assert False, "Expected the line limit to be enforced"


def test_parse_request():
	atoms = feedAll(HTTPParser(), REQUEST)
	assert atoms[0] == HTTPRequestLine("GET", "/time/5", "", "HTTP/1.1")
	assert isinstance(atoms[1], HTTPHeaders)
	(request,) = requests(atoms)
	assert request.method == "GET"
	assert request.path == "/time/5"
	assert request.header("host") == "127.0.0.1"
	assert request.keepAlive is False
	assert atoms[-1] is HTTPProcessingStatus.Complete


def test_parse_request_byte_by_byte():
	parser = HTTPParser()
	atoms = feedAll(parser, *(REQUEST[i : i + 1] for i in range(len(REQUEST))))
	(request,) = requests(atoms)
	assert request.path == "/time/5"
	assert request.header("Connection") == "close"


def test_parse_pipelined_requests():
	data = (
		b"GET /a HTTP/1.1\r\nHost: x\r\n\r\n"
		b"POST /b?k=v HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"
		b"HEAD /c%20d HTTP/1.1\r\n\r\n"
	)
	reqs = requests(feedAll(HTTPParser(), data))
	assert [(_.method, _.path) for _ in reqs] == [
		("GET", "/a"),
		("POST", "/b"),
		("HEAD", "/c d"),
	]
	assert reqs[1].query == {"k": "v"}
	assert reqs[1].header("Content-Length") == "5"


def test_body_across_chunks():
	parser = HTTPParser()
	reqs = requests(
		feedAll(
			parser,
			b"POST /a HTTP/1.1\r\nContent-Length: 11\r\n\r\nhel",
			b"lo wo",
			b"rldGET /b HTTP/1.1\r\n\r\n",
		)
	)
	assert [(_.method, _.path) for _ in reqs] == [("POST", "/a"), ("GET", "/b")]


def test_parse_leading_empty_lines():
	reqs = requests(feedAll(HTTPParser(), b"\r\n\r\n" + REQUEST))
	assert [_.path for _ in reqs] == ["/time/5"]


def test_parse_malformed():
	for data in (
		b"GARBAGE\r\n\r\n",
		b"GET / HTTP/1.1\r\nNo colon here\r\n\r\n",
		b"GET / HTTP/1.1\r\nContent-Length: nope\r\n\r\n",
		b"GET / HTTP/1.1\r\nContent-Length: -1\r\n\r\n",
	):
		atoms = feedAll(HTTPParser(), data)
		assert HTTPProcessingStatus.BadFormat in atoms, data
		assert not requests(atoms)


def test_repeated_headers_are_combined():
	(request,) = requests(
		feedAll(
			HTTPParser(),
			b"GET / HTTP/1.1\r\nAccept-Encoding: br\r\naccept-encoding: gzip\r\n\r\n",
		)
	)
	assert request.header("Accept-Encoding") == "br, gzip"


def test_keep_alive():
	def parse(data: bytes) -> HTTPRequest:
		return requests(feedAll(HTTPParser(), data))[0]

	assert parse(b"GET / HTTP/1.1\r\n\r\n").keepAlive
	assert not parse(b"GET / HTTP/1.0\r\n\r\n").keepAlive
	assert parse(b"GET / HTTP/1.0\r\nConnection: Keep-Alive\r\n\r\n").keepAlive
	assert not parse(b"GET / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n").keepAlive


def test_parse_query():
	assert parseQuery("") == {}
	assert parseQuery("a=1&b&c=%2F") == {"a": "1", "b": "", "c": "/"}


def test_header_names():
	assert headername("content-type") == "Content-Type"
	assert headername("ETAG") == "ETag"
	assert headername("x-custom-thing") == "X-Custom-Thing"


def test_client_header_names_are_not_kept():
	known = dict(HEADER_NAMES)
	parser = HTTPParser()
	for i in range(200):
		(request,) = requests(
			feedAll(parser, f"GET / HTTP/1.1\r\nX-Junk-{i}: {i}\r\n\r\n".encode())
		)
		assert request.header(f"x-junk-{i}") == str(i)
	assert HEADER_NAMES == known


# EOF
