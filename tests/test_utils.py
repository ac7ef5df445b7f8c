import io
from pathlib import Path

import pytest

from serve.utils.files import contentType, guessType, isText
from serve.utils.htmpl import H, html
from serve.utils.limits import LimitType, limit, unlimit
from serve.utils.logging import (
	LogLevel,
	LogOutput,
	configure,
	error,
	event,
	exception,
	info,
	logged,
)


def test_content_type(tmp_path: Path):
	(tmp_path / "page.html").write_text("<p>hi</p>")
	(tmp_path / "app.js").write_text("let a = 1;")
	(tmp_path / "README").write_text("plain text, no extension")
	(tmp_path / "blob").write_bytes(b"\x00\x01\x02binary")
	assert contentType(tmp_path / "page.html") == "text/html; charset=utf-8"
	assert contentType(tmp_path / "app.js") == "text/javascript; charset=utf-8"
	assert contentType(tmp_path / "README") == "text/plain; charset=utf-8"
	assert contentType(tmp_path / "blob") == "application/octet-stream"
	assert guessType("archive.tar.gz") == "application/gzip"
	assert guessType("image.PNG") == "image/png"
	assert guessType("noext") is None


def test_is_text(tmp_path: Path):
	path = tmp_path / "utf8"
	# The sample cuts a multi-byte character
	path.write_bytes("é".encode() * 600)
	assert isText(path, size=513)
	path.write_bytes(b"\xff\xfe\xfd")
	assert not isText(path)
	assert not isText(tmp_path / "missing")


def test_htmpl():
	node = H.ul(H.li("a < b", _="item"), [H.li("c"), H.li("d")])
	assert str(node) == '<ul><li class="item">a &lt; b</li><li>c</li><li>d</li></ul>'
	assert "".join(html(H.meta(charset="utf-8"), doctype="html")) == (
		'<!DOCTYPE html>\n<meta charset="utf-8">'
	)
	assert str(H.a("x", href='a"b&c')) == '<a href="a&quot;b&amp;c">x</a>'
	with pytest.raises(AttributeError):
		H.blink("no")


def test_unlimit():
	before = limit(LimitType.Files)
	res = unlimit(LimitType.Files)
	after = limit(LimitType.Files)
	assert res is False or after.soft >= before.soft
	assert after.hard == before.hard


def test_logging(monkeypatch: pytest.MonkeyPatch):
	out = io.StringIO()
	monkeypatch.setattr(LogOutput, "stream", out)
	monkeypatch.setattr(LogOutput, "level", LogOutput.level)
	info("Serving directory", Root="/srv/site")
	error("Unable to bind", "HOSTPORTERR", Reason="in use")
	event("GET", "/index.html", Status=200)
	text = out.getvalue()
	assert "Serving directory" in text and "/srv/site" in text
	assert "[HOSTPORTERR] Unable to bind" in text
	assert "GET" in text and "/index.html" in text and "200" in text
	configure(level=LogLevel.Warning)
	assert not logged(LogLevel.Info)
	assert logged(LogLevel.Error)
	info("Hidden")
	assert "Hidden" not in out.getvalue()


def test_exception_logging(monkeypatch: pytest.MonkeyPatch):
	out = io.StringIO()
	monkeypatch.setattr(LogOutput, "stream", out)
	try:
		raise ValueError("Broken")
	except ValueError as e:
		assert exception(e, "While testing") is e
	text = out.getvalue()
	assert "While testing: [ValueError] Broken" in text
	assert "test_exception_logging" in text


# EOF
