import http.client
import os
import re
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path

import pytest

from serve.__main__ import HELP, main, parser

SOURCES: Path = Path(__file__).parent.parent / "src" / "py"


def test_help(capsys: pytest.CaptureFixture[str]):
	for flag in ("-h", "-help", "--help"):
		assert main([flag]) == 0
		assert capsys.readouterr().out == HELP
	assert "-port" in HELP and "-gzip" in HELP and "-log" in HELP


def test_options():
	options = parser().parse_args([])
	assert options.port == "localhost:8080"
	assert not options.gzip and not options.log
	assert options.timeout == 3600.0
	assert options.directory is None
	options = parser().parse_args(["-port", ":9000", "-gzip", "-log", "site"])
	assert options.port == ":9000"
	assert options.gzip and options.log
	assert options.directory == "site"
	options = parser().parse_args(["--port=127.0.0.1:1", "-timeout", "2.5"])
	assert options.port == "127.0.0.1:1"
	assert options.timeout == 2.5


def test_unknown_option():
	with pytest.raises(SystemExit) as e:
		main(["-nope"])
	assert e.value.code == 2


def test_missing_directory(tmp_path: Path):
	assert main([str(tmp_path / "missing")]) == 1


def test_invalid_address(site: Path):
	assert main(["-port", "localhost", str(site)]) == 1


def test_bind_failure(site: Path):
	with socket.socket() as taken:
		taken.bind(("127.0.0.1", 0))
		taken.listen(1)
		port = taken.getsockname()[1]
		assert main(["-port", f"127.0.0.1:{port}", str(site)]) == 1


def test_signal_shutdown(site: Path):
	env = dict(os.environ)
	env["PYTHONPATH"] = os.pathsep.join(
		_ for _ in (str(SOURCES), env.get("PYTHONPATH")) if _
	)
	env["NO_COLOR"] = "1"
	env["PYTHONIOENCODING"] = "utf-8"
	process = subprocess.Popen(
		[sys.executable, "-m", "serve", "-port", "127.0.0.1:0", "-gzip", str(site)],
		env=env,
		stderr=subprocess.PIPE,
		encoding="utf-8",
		errors="replace",
	)
	try:
		assert process.stderr is not None
		port: int | None = None
		deadline = time.monotonic() + 10
		while port is None and time.monotonic() < deadline:
			line = process.stderr.readline()
			if not line:
				break
			if match := re.search(r"Web server listening.*Address=\S*:(\d+)", line):
				port = int(match.group(1))
		assert port, "Server did not report its address"
		connection = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
		connection.request("GET", "/")
		assert connection.getresponse().read() == b"hello"
		connection.close()
		process.send_signal(signal.SIGINT)
		assert process.wait(10) == 0
		assert "EOK" in process.stderr.read()
	finally:
		if process.poll() is None:
			process.kill()
			process.wait()


# EOF
