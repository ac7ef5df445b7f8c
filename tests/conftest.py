import asyncio
import http.client
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Literal, NamedTuple

import pytest

from serve.config import ServerConfig
from serve.http.model import HTTPBodyWriter, HTTPHeaders, HTTPRequest
from serve.server import AIOSocketServer, handler

# More than what the gzip encoder and the socket reads buffer at once
BIG_SIZE: int = 300_000


class Fetched(NamedTuple):
	status: int
	headers: dict[str, str]
	body: bytes


class MemoryBodyWriter(HTTPBodyWriter):
	"""Collects what is written, optionally failing after some writes."""

	def __init__(self, failAfter: int | None = None) -> None:
		super().__init__(None)
		self.data = bytearray()
		self.writes: int = 0
		self.failAfter: int | None = failAfter

	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool:
		if chunk:
			if self.failAfter is not None and self.writes >= self.failAfter:
				raise OSError("Disk went away")
			self.writes += 1
			self.data += chunk
		return True


def request(
	path: str,
	method: str = "GET",
	headers: dict[str, str] | None = None,
	protocol: str = "HTTP/1.1",
	query: dict[str, str] | None = None,
) -> HTTPRequest:
	return HTTPRequest(
		method=method,
		path=path,
		query=query,
		headers=HTTPHeaders(dict(headers or {})),
		protocol=protocol,
	)


def bigContent() -> bytes:
	# Not too repetitive, so that it doesn't compress to nothing
	return b"".join(f"{i:08x}:{i * 7919 % 104729}\n".encode() for i in range(BIG_SIZE // 16))[
		:BIG_SIZE
	]


@pytest.fixture
def site(tmp_path: Path) -> Path:
	root = tmp_path / "site"
	(root / "a").mkdir(parents=True)
	(root / "docs").mkdir()
	(root / "index.html").write_bytes(b"hello")
	(root / "a" / "b.txt").write_bytes(b"world")
	(root / "docs" / "notes.md").write_bytes(b"# Notes\n")
	(root / "docs" / "data.bin").write_bytes(bytes(range(256)))
	(root / "empty.txt").write_bytes(b"")
	(root / "big.txt").write_bytes(bigContent())
	(root / "digits.txt").write_bytes(b"0123456789")
	(tmp_path / "secret.txt").write_bytes(b"secret")
	return root


@contextmanager
def serving(config: ServerConfig) -> Iterator[AIOSocketServer]:
	"""Runs the server in a background thread, with its own loop."""
	server = AIOSocketServer(handler(config), config)
	server.bind()
	thread = threading.Thread(target=lambda: asyncio.run(server.serve()), daemon=True)
	thread.start()
	assert server.ready.wait(5), "Server did not start"
	try:
		yield server
	finally:
		server.stop()
		thread.join(5)


def fetch(
	server: AIOSocketServer,
	path: str,
	method: str = "GET",
	headers: dict[str, str] | None = None,
) -> Fetched:
	address = server.address
	connection = http.client.HTTPConnection(address.host, address.port, timeout=5)
	try:
		connection.request(method, path, headers=headers or {})
		response = connection.getresponse()
		body = response.read()
		return Fetched(
			response.status, {k.lower(): v for k, v in response.getheaders()}, body
		)
	finally:
		connection.close()


@pytest.fixture
def config(site: Path) -> ServerConfig:
	return ServerConfig.Create(site, address="127.0.0.1:0")


@pytest.fixture
def server(config: ServerConfig) -> Iterator[AIOSocketServer]:
	with serving(config) as s:
		yield s


@pytest.fixture
def gzipServer(site: Path) -> Iterator[AIOSocketServer]:
	with serving(ServerConfig.Create(site, address="127.0.0.1:0", gzip=True)) as s:
		yield s


# EOF
