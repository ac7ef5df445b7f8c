import gzip

from serve.utils.codec import ChunkedEncoder, GZipEncoder, PipelineCodec


def unchunk(data: bytes) -> bytes:
	"""Decodes a chunked body, asserting it is properly terminated."""
	res = bytearray()
	offset: int = 0
	while True:
		eol = data.index(b"\r\n", offset)
		size = int(data[offset:eol], 16)
		offset = eol + 2
		if size == 0:
			assert data[offset:] == b"\r\n"
			return bytes(res)
		res += data[offset : offset + size]
		assert data[offset + size : offset + size + 2] == b"\r\n"
		offset += size + 2


def test_gzip_encoder_produces_gzip():
	encoder = GZipEncoder()
	data = b"".join(
		_ for _ in (encoder.feed(b"hello " * 100), encoder.feed(b"world")) if _
	) + (encoder.flush() or b"")
	assert data[:2] == b"\x1f\x8b"
	assert gzip.decompress(data) == b"hello " * 100 + b"world"


def test_gzip_encoder_empty():
	encoder = GZipEncoder()
	data = encoder.flush()
	assert data
	assert gzip.decompress(data) == b""


def test_chunked_encoder():
	encoder = ChunkedEncoder()
	assert encoder.feed(b"hello") == b"5\r\nhello\r\n"
	assert encoder.feed(b"x" * 26) == b"1A\r\n" + b"x" * 26 + b"\r\n"
	# Empty input must not end the body early
	assert encoder.feed(b"") is None
	assert encoder.flush() == b"0\r\n\r\n"
	assert encoder.flush() is None


def test_pipeline_flush_cascades():
	codec = PipelineCodec([GZipEncoder(), ChunkedEncoder()])
	data = bytearray()
	for _ in range(10):
		chunk = codec.feed(b"some text that compresses well " * 50, True)
		if chunk:
			data += chunk
	# What the gzip encoder flushes is framed, then the last chunk is written
	data += codec.flush() or b""
	assert data.endswith(b"0\r\n\r\n")
	assert gzip.decompress(unchunk(bytes(data))) == b"some text that compresses well " * 500


def test_pipeline_flush_empty():
	codec = PipelineCodec([GZipEncoder(), ChunkedEncoder()])
	assert gzip.decompress(unchunk(codec.flush() or b"")) == b""


# EOF
