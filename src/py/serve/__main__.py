import argparse
import sys

from .config import ADDRESS, READ_TIMEOUT, ConfigurationError, ServerConfig
from .server import run
from .utils.logging import error

HELP: str = """
Serves a directory (or present working directory) via HTTP on the given port.

Usage: serve [options] [directory]

      -port       =string   Address for HTTP communication.
      -gzip       (flag)    Use gzip compression for responses.
      -log        (flag)    Run in verbose mode.
      -timeout    =seconds  Read timeout for client connections (default 3600).
  -h, -help       (flag)    Show help message
"""


def parser() -> argparse.ArgumentParser:
	res = argparse.ArgumentParser(
		prog="serve",
		usage="serve [options] [directory]",
		add_help=False,
		allow_abbrev=False,
	)
	res.add_argument("-port", "--port", default=ADDRESS)
	res.add_argument("-gzip", "--gzip", action="store_true")
	res.add_argument("-log", "--log", action="store_true")
	res.add_argument("-timeout", "--timeout", type=float, default=READ_TIMEOUT)
	res.add_argument("-h", "-help", "--help", dest="help", action="store_true")
	res.add_argument("directory", nargs="?", default=None)
	return res


def main(args: list[str] | None = None) -> int:
	options = parser().parse_args(args)
	if options.help:
		sys.stdout.write(HELP)
		return 0
	try:
		config = ServerConfig.Create(
			options.directory,
			address=options.port,
			gzip=options.gzip,
			log=options.log,
			readTimeout=options.timeout,
		)
	except ConfigurationError as e:
		error(str(e), "CONFIGERR")
		return 1
	return run(config)


if __name__ == "__main__":
	sys.exit(main())

# EOF
