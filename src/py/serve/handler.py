from abc import ABC, abstractmethod
from typing import Callable

from .http.model import HTTPRequest, HTTPResponse

# -----------------------------------------------------------------------------
#
# HANDLER
#
# -----------------------------------------------------------------------------


class Handler(ABC):
	"""Anything that processes one request into a response. Handlers compose
	by wrapping each other, see `chain`."""

	@abstractmethod
	def process(self, request: HTTPRequest) -> HTTPResponse: ...

	async def start(self) -> None:
		"""Can be overridden to do asynchronous pre-start work"""
		pass

	async def stop(self) -> None:
		"""Can be overridden to do asynchronous post-stop work"""
		pass


class HandlerWrapper(Handler):
	"""A handler that decorates another one."""

	def __init__(self, handler: Handler) -> None:
		self.handler: Handler = handler

	def process(self, request: HTTPRequest) -> HTTPResponse:
		return self.handler.process(request)

	async def start(self) -> None:
		await self.handler.start()

	async def stop(self) -> None:
		await self.handler.stop()

	def __repr__(self) -> str:
		return f"{self.__class__.__name__}({self.handler!r})"


class FunctionHandler(Handler):
	"""Wraps a plain function as a handler."""

	def __init__(self, function: Callable[[HTTPRequest], HTTPResponse]) -> None:
		self.function = function

	def process(self, request: HTTPRequest) -> HTTPResponse:
		return self.function(request)


def chain(
	handler: Handler | Callable[[HTTPRequest], HTTPResponse],
	*wrappers: Callable[[Handler], Handler],
) -> Handler:
	"""Wraps the handler with each wrapper in turn, the last wrapper is
	the outermost one."""
	res: Handler = handler if isinstance(handler, Handler) else FunctionHandler(handler)
	for wrapper in wrappers:
		res = wrapper(res)
	return res


# EOF
