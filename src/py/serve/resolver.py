import posixpath
from pathlib import Path

from .config import INDEX
from .utils.logging import info


class PathResolver:
	"""Maps request paths to local paths under the root directory."""

	__slots__ = ["root", "index", "log"]

	def __init__(self, root: str | Path, *, index: str = INDEX, log: bool = False):
		self.root: Path = (root if isinstance(root, Path) else Path(root)).absolute()
		self.index: str = index
		self.log: bool = log

	def resolve(self, path: str) -> Path:
		"""Returns the local path for the given request path, substituting the
		default document for `/`. The path is normalized before being joined
		so that `..` segments stop at the root. Existence is not checked."""
		name: str = self.index if path == "/" else path
		# NOTE: The trailing slash is part of the request semantics (directories)
		# but not of the local path.
		local_path: Path = self.root.joinpath(
			posixpath.normpath(posixpath.join("/", name)).lstrip("/")
		)
		if self.log:
			info("URL", Path=path, File=str(local_path))
		return local_path

	def contains(self, path: Path) -> bool:
		"""Tells if the given path is lexically within the root."""
		return path.parts[: len(parts := self.root.parts)] == parts


# EOF
