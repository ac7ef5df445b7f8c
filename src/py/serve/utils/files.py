import mimetypes
from pathlib import Path

mimetypes.init()

# Types that `mimetypes` gets wrong or doesn't know on some platforms
MIME_TYPES: dict[str, str] = dict(
	bz2="application/x-bzip",
	gz="application/gzip",
	js="text/javascript",
	mjs="text/javascript",
	wasm="application/wasm",
	webp="image/webp",
	md="text/markdown",
)

SNIFF_SIZE: int = 512


def isText(path: Path | str, size: int = SNIFF_SIZE) -> bool:
	"""Check if a file is likely a text file by examining its content."""
	try:
		with open(path, "rb") as f:
			s = f.read(size)
	except OSError:
		return False
	if b"\x00" in s:
		return False
	try:
		s.decode("utf-8")
		return True
	except UnicodeDecodeError as e:
		# The sample may end in the middle of a multi-byte sequence
		return e.start >= len(s) - 3 and len(s) == size


def guessType(path: Path | str) -> str | None:
	"""Guesses the content type from the path extension only."""
	name: str = path.name if isinstance(path, Path) else Path(path).name
	ext: str = name.rsplit(".", 1)[-1].lower() if "." in name else ""
	return MIME_TYPES.get(ext) or mimetypes.guess_type(name)[0]


def contentType(path: Path | str) -> str:
	"""Guesses the content type from the given path, looking at the content
	when the extension is not enough. Text types are returned with
	their charset."""
	res: str | None = guessType(path)
	if res is None:
		res = "text/plain" if isText(path) else "application/octet-stream"
	if res.startswith("text/") and "charset" not in res:
		res = f"{res}; charset=utf-8"
	return res


# EOF
