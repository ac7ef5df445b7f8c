from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

ADDRESS: str = "localhost:8080"

# Idle or slow clients can't hold a connection for longer than this
READ_TIMEOUT: float = 3_600.0

BACKLOG: int = 1_024

READ_SIZE: int = 64_000

INDEX: str = "index.html"


class ConfigurationError(Exception):
	"""Raised when the server can't be configured, this is fatal."""


class Address(NamedTuple):
	host: str
	port: int

	@staticmethod
	def Parse(address: str) -> "Address":
		"""Parses addresses like `host:port`, `:port` or `[::1]:port`. An empty
		host means all interfaces."""
		host, sep, port = address.rpartition(":")
		if not sep:
			raise ConfigurationError(f"Address is missing a port: {address!r}")
		if host.startswith("[") and host.endswith("]"):
			host = host[1:-1]
		try:
			value = int(port)
		except ValueError:
			raise ConfigurationError(f"Address has an invalid port: {address!r}")
		if not 0 <= value <= 65535:
			raise ConfigurationError(f"Address port is out of range: {address!r}")
		return Address(host, value)

	def __str__(self) -> str:
		return f"[{self.host}]:{self.port}" if ":" in self.host else f"{self.host}:{self.port}"


@dataclass(slots=True, frozen=True)
class ServerConfig:
	"""Created once at startup and shared read-only with every component."""

	root: Path
	address: str = ADDRESS
	gzip: bool = False
	log: bool = False
	readTimeout: float = READ_TIMEOUT
	backlog: int = BACKLOG
	readSize: int = READ_SIZE
	index: str = INDEX

	@staticmethod
	def Create(
		root: str | Path | None = None,
		*,
		address: str = ADDRESS,
		gzip: bool = False,
		log: bool = False,
		readTimeout: float = READ_TIMEOUT,
	) -> "ServerConfig":
		"""Creates a configuration, using the current directory when no root is
		given. Raises `ConfigurationError` when the root can't be served."""
		if root is None:
			try:
				root = Path.cwd()
			except OSError as e:
				raise ConfigurationError(f"Could not get current directory: {e}")
		path: Path = (root if isinstance(root, Path) else Path(root)).absolute()
		if not path.is_dir():
			raise ConfigurationError(f"Directory does not exist: {path}")
		if readTimeout <= 0:
			raise ConfigurationError(f"Read timeout must be positive: {readTimeout}")
		Address.Parse(address)
		return ServerConfig(
			root=path,
			address=address,
			gzip=gzip,
			log=log,
			readTimeout=readTimeout,
		)

	@property
	def bind(self) -> Address:
		return Address.Parse(self.address)


# EOF
