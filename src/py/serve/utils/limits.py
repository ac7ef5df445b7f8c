from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


# Darwin reports very high hard limits that would lead to overflows
REASONABLE_LIMITS: dict[LimitType, int] = {
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(scope: LimitType, ratio: float = 1.0) -> int | bool:
	"""Raises the soft limit towards the hard limit, each connection being
	a file descriptor."""
	lm = limit(scope)
	if lm.soft == resource.RLIM_INFINITY:
		return lm.soft
	hard: int = (
		REASONABLE_LIMITS[scope] if lm.hard == resource.RLIM_INFINITY else lm.hard
	)
	target = min(int(lm.soft + ratio * (hard - lm.soft)), REASONABLE_LIMITS[scope])
	if target <= lm.soft:
		return lm.soft
	try:
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except (ValueError, OSError):
		return False


# EOF
