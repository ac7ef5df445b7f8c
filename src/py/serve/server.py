import asyncio
import socket
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from signal import SIGINT, SIGTERM, Signals
from typing import Any, Literal

from .config import Address, ServerConfig
from .features.gzip import GZipHandler
from .handler import Handler, chain
from .http.model import (
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestError,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .http.status import HTTP_NO_BODY
from .resolver import PathResolver
from .services.files import FileService, httpdate
from .utils.limits import LimitType, unlimit
from .utils.logging import (
	LogLevel,
	debug,
	error,
	event,
	exception,
	info,
	logged,
	warning,
)

SERVER_NAME: str = "serve"

SERVER_BAD_REQUEST: bytes = (
	b"HTTP/1.1 400 Bad Request\r\n"
	b"Content-Type: text/plain; charset=utf-8\r\n"
	b"Content-Length: 16\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"400 Bad Request\n"
)


class ServerStatus(Enum):
	Configuring = 0
	Binding = 1
	Serving = 2
	Terminating = 3
	Terminated = 4


class BindError(Exception):
	"""The server could not listen on its address, this is fatal."""

	def __init__(self, address: str, reason: OSError):
		super().__init__(f"Unable to bind to {address}: {reason}")
		self.address: str = address
		self.reason: OSError = reason


@dataclass(slots=True)
class ServerState:
	status: ServerStatus = ServerStatus.Configuring
	# Resolved with the reason of the shutdown, the accept loop stops as
	# soon as it is done.
	shutdown: "asyncio.Future[str] | None" = None
	tasks: "set[asyncio.Task[None]]" = field(default_factory=set)

	def stop(self, reason: str) -> None:
		if self.shutdown and not self.shutdown.done():
			event("Shutdown", reason)
			self.status = ServerStatus.Terminating
			self.shutdown.set_result(reason)

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		if e:
			exception(e)
		else:
			warning(context.get("message", "Unhandled event loop error"))


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with AIO sockets."""

	def __init__(
		self, client: "socket.socket", loop: asyncio.AbstractEventLoop
	) -> None:
		super().__init__(None)
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool:
		if chunk:
			await self.loop.sock_sendall(self.client, chunk)
		return True

	async def _writeFile(
		self, path: Path, start: int = 0, count: int | None = None, size: int = 64_000
	) -> bool:
		if self.transform:
			# Transformed bytes have to go through Python
			return await super()._writeFile(path, start, count, size)
		with open(path, "rb") as f:
			await self.loop.sock_sendfile(self.client, f, start, count)
		return True


class AIOSocketServer:
	"""AsyncIO backend using sockets directly, with one task per connection."""

	def __init__(self, handler: Handler, config: ServerConfig) -> None:
		self.handler: Handler = handler
		self.config: ServerConfig = config
		self.state: ServerState = ServerState()
		self.socket: socket.socket | None = None
		self.loop: asyncio.AbstractEventLoop | None = None
		# Set once the server accepts connections
		self.ready: threading.Event = threading.Event()

	@property
	def status(self) -> ServerStatus:
		return self.state.status

	@property
	def address(self) -> Address:
		"""The bound address, which tells the actual port when binding to port 0."""
		if self.socket is None:
			return self.config.bind
		sockname = self.socket.getsockname()
		return Address(sockname[0], sockname[1])

	def bind(self) -> socket.socket:
		"""Creates the listening socket, raising `BindError` on failure."""
		self.state.status = ServerStatus.Binding
		host, port = self.config.bind
		server: socket.socket | None = None
		try:
			family, kind, proto, _, sockaddr = socket.getaddrinfo(
				host or None, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
			)[0]
			server = socket.socket(family, kind, proto)
			server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
			server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
			server.bind(sockaddr)
			# The backlog of connections that will be accepted before
			# they are refused.
			server.listen(self.config.backlog)
			# This is what we need to use it with asyncio
			server.setblocking(False)
		except OSError as e:
			if server:
				server.close()
			error(
				f"Unable to bind to {self.config.address}, aborting.",
				"HOSTPORTERR",
				Reason=str(e),
			)
			raise BindError(self.config.address, e) from e
		self.socket = server
		return server

	def stop(self, reason: str = "stop") -> None:
		"""Stops the server, can be called from any thread."""
		if self.loop and not self.loop.is_closed():
			self.loop.call_soon_threadsafe(self.state.stop, reason)

	async def serve(self) -> None:
		"""Main server coroutine, accepting connections until shutdown."""
		server: socket.socket = self.socket or self.bind()
		loop = asyncio.get_running_loop()
		self.loop = loop
		state = self.state
		state.shutdown = loop.create_future()
		# Note that we'll get a `set_wakeup_fd only works in main thread of the
		# main interpreter` when this is not run out of the main thread.
		if threading.current_thread() is threading.main_thread():
			for sig in (SIGINT, SIGTERM):
				loop.add_signal_handler(sig, state.stop, Signals(sig).name)
		loop.set_exception_handler(state.onException)
		await self.handler.start()
		state.status = ServerStatus.Serving
		info("Web server listening", icon="🚀", Address=str(self.address))
		self.ready.set()
		accept: asyncio.Task[tuple[socket.socket, Any]] | None = None
		try:
			while not state.shutdown.done():
				accept = loop.create_task(loop.sock_accept(server))
				await asyncio.wait(
					(accept, state.shutdown), return_when=asyncio.FIRST_COMPLETED
				)
				if not accept.done():
					break
				try:
					client, _ = accept.result()
				except OSError as e:
					# This can be: [OSError] [Errno 24] Too many open files
					if e.errno == 24:
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				task = loop.create_task(self.onConnection(client))
				state.tasks.add(task)
				task.add_done_callback(state.tasks.discard)
		finally:
			state.status = ServerStatus.Terminating
			if accept and not accept.done():
				accept.cancel()
			server.close()
			self.socket = None
			# Shutdown is abrupt, in-flight responses are cut off
			for task in list(state.tasks):
				task.cancel()
			await asyncio.gather(*state.tasks, return_exceptions=True)
			await self.handler.stop()
			if threading.current_thread() is threading.main_thread():
				for sig in (SIGINT, SIGTERM):
					loop.remove_signal_handler(sig)
			state.status = ServerStatus.Terminated
			self.ready.clear()

	async def onConnection(self, client: socket.socket) -> None:
		"""Processes the requests sent on the client connection, until the
		client or a response closes it, or the read timeout expires."""
		loop = asyncio.get_running_loop()
		size: int = self.config.readSize
		buffer = bytearray(size)
		parser: HTTPParser = HTTPParser()
		writer: AIOSocketBodyWriter = AIOSocketBodyWriter(client, loop)
		keep_alive: bool = True
		req_count: int = 0
		# The whole request has to arrive before the deadline, a client
		# trickling bytes can't hold the connection past it.
		deadline: float = loop.time() + self.config.readTimeout
		try:
			while keep_alive:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer),
						timeout=max(0.0, deadline - loop.time()),
					)
				except asyncio.TimeoutError:
					logged(LogLevel.Debug) and debug(
						"Client timed out", Client=f"{id(client):x}", Requests=req_count
					)
					break
				if not n:
					# A no-data means a close
					break
				# With HTTP pipelining, we may receive more than one
				# request in the same payload.
				for atom in parser.feed(bytes(buffer[:n])):
					if atom is HTTPProcessingStatus.BadFormat:
						warning("Malformed request", Client=f"{id(client):x}")
						await writer.writeHead(SERVER_BAD_REQUEST)
						keep_alive = False
					elif isinstance(atom, HTTPRequest):
						req_count += 1
						res = await self.sendResponse(atom, writer)
						if not atom.keepAlive or res.shouldClose:
							keep_alive = False
						deadline = loop.time() + self.config.readTimeout
					if not keep_alive:
						break
		except (BrokenPipeError, ConnectionResetError):
			# Client did an early close
			pass
		except Exception as e:
			exception(e)
		finally:
			client.close()

	async def sendResponse(
		self, request: HTTPRequest, writer: HTTPBodyWriter
	) -> HTTPResponse:
		"""Processes the request with the handler and sends the response
		using the given writer."""
		try:
			res = self.handler.process(request)
		except HTTPRequestError as e:
			res = request.error(e.status or 500, e.message)
		except Exception as e:
			exception(e, f"Handler failed on {request.method} {request.path}")
			res = request.fail()
		if self.config.log:
			event(request.method, request.path, Status=res.status)
		if res.body is None and res.status not in HTTP_NO_BODY:
			res.setHeader("Content-Length", 0)
		if res.shouldClose or not request.keepAlive:
			res.shouldClose = True
			res.setHeader("Connection", "close")
		elif request.protocol == "HTTP/1.0":
			res.setHeader("Connection", "keep-alive")
		res.setHeader("Date", httpdate(time.time()))
		res.setHeader("Server", SERVER_NAME)
		await writer.writeHead(res.head())
		if request.method != "HEAD" and res.hasBody:
			try:
				async with writer.session(res.transform):
					await writer.write(res.body)
			except (BrokenPipeError, ConnectionResetError):
				raise
			except Exception as e:
				# The head is sent, the only way to signal the error is to
				# close the connection.
				exception(e, f"Could not send body for {request.path}")
				res.shouldClose = True
		return res


# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------


def handler(config: ServerConfig) -> Handler:
	"""Creates the handler chain for the configuration, files are compressed
	when gzip is enabled."""
	files = FileService(PathResolver(config.root, index=config.index, log=config.log))
	return chain(files, GZipHandler) if config.gzip else files


def run(config: ServerConfig) -> int:
	"""High level function to run the server until it is stopped by a signal,
	returns the process exit code."""
	unlimit(LimitType.Files)
	server = AIOSocketServer(handler(config), config)
	try:
		server.bind()
	except BindError:
		return 1
	if config.gzip:
		info("HTTP server will return gzip values if permitted by browser.")
	info("Serving directory", Root=str(config.root))
	asyncio.run(server.serve())
	event("EOK")
	return 0


# EOF
