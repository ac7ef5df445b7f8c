import zlib
from typing import Literal
from abc import ABC, abstractmethod


class BytesTransform(ABC):
	"""An abstract bytes transform."""

	@abstractmethod
	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		"""Feeds bytes to the transform, may return a value."""

	@abstractmethod
	def flush(self) -> bytes | None | Literal[False]:
		"""Ensures that the bytes transform is flushed, for chunked encodings this will produce the last chunk."""


class PipelineCodec(BytesTransform):
	"""Composes transforms, the output of each one is fed to the next."""

	__slots__ = ["transforms"]

	def __init__(self, transforms: list[BytesTransform]):
		super().__init__()
		self.transforms: list[BytesTransform] = transforms

	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		res: bytes | Literal[False] | None = chunk
		for t in self.transforms:
			if not res:
				return res
			else:
				res = t.feed(res, more)
		return res

	def flush(self) -> bytes | None | Literal[False]:
		# Each transform is flushed in order, and what it flushes goes
		# through the rest of the pipeline before they are flushed in turn.
		res = bytearray()
		for i, t in enumerate(self.transforms):
			chunk: bytes | None | Literal[False] = t.flush()
			if chunk is False:
				return False
			for n in self.transforms[i + 1 :]:
				if not chunk:
					break
				chunk = n.feed(chunk)
				if chunk is False:
					return False
			if chunk:
				res += chunk
		return bytes(res) if res else None


class GZipEncoder(BytesTransform):
	"""Encode bytes as Gzip"""

	__slots__ = ["compressor"]

	def __init__(self, compression_level: int = 6) -> None:
		super().__init__()
		self.compressor = zlib.compressobj(
			level=compression_level, wbits=zlib.MAX_WBITS | 16
		)

	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		return self.compressor.compress(chunk)

	def flush(self) -> bytes | None | Literal[False]:
		return self.compressor.flush()


# SEE: https://httpwg.org/specs/rfc9112.html#chunked.encoding
class ChunkedEncoder(BytesTransform):
	"""Frames each fed payload as a chunk, flushing writes the last chunk."""

	__slots__ = ["closed"]

	def __init__(self) -> None:
		super().__init__()
		self.closed: bool = False

	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		# An empty chunk would be read as the end of the body
		if not chunk:
			return None
		return f"{len(chunk):X}\r\n".encode() + chunk + b"\r\n"

	def flush(self) -> bytes | None | Literal[False]:
		if self.closed:
			return None
		self.closed = True
		return b"0\r\n\r\n"


# EOF
