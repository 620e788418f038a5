"""Caller attribution for log records.

The JSON formatter runs several frames below the code that actually issued a
log call: the facade verb, ``logging.LoggerAdapter``, ``logging.Logger``, the
handler and the formatter itself all sit on the stack. This module walks the
live stack and returns the first frame that belongs to neither this package nor
the wrapped ``logging`` package, so ``func`` and ``file`` point at application
code.

Example:
    >>> from svclog.caller import StackAttribution
    >>> frame = StackAttribution().resolve()
    >>> if frame is not None:
    ...     print(frame.short_function, frame.location)
"""

import sys
import threading
from dataclasses import dataclass
from types import FrameType
from typing import Protocol

# Restrict the lookback to avoid runaway walks on deep stacks
MAXIMUM_CALLER_DEPTH = 25

# Frames between resolve() and the handler when called from JSONFormatter:
# resolve, JSONFormatter.format, Handler.format, StreamHandler.emit
KNOWN_LOGGING_FRAMES = 4

# The wrapped logging library never counts as a caller
LOGGING_PACKAGE = "logging"

_RESOLVER_ENTRY_POINT = "resolve"


@dataclass(frozen=True)
class CallerFrame:
    """Snapshot of one stack level at the moment of a log call.

    Attributes:
        function: Fully qualified symbol, ``<module>.<qualname>``
        file: Source file path
        line: Line number being executed
    """

    function: str
    file: str
    line: int

    @property
    def short_function(self) -> str:
        """Last dot-separated segment of the fully qualified function name."""
        return self.function.rsplit(".", 1)[-1]

    @property
    def location(self) -> str:
        """``"<file>:<line>"`` as rendered in the ``file`` field."""
        return f"{self.file}:{self.line}"


class AttributionStrategy(Protocol):
    """Anything that can name the caller of the current log call."""

    def resolve(self) -> CallerFrame | None: ...


def package_from_symbol(name: str) -> str:
    """Reduce a fully qualified symbol name to its package.

    Trailing ``.component`` segments are stripped until the last period no
    longer follows the last slash, so dots inside slash-separated path
    segments survive.

    Args:
        name: Fully qualified symbol, e.g. ``"github.com/org/pkg.(*Type).Method"``
            or ``"svclog.caller.StackAttribution.resolve"``

    Returns:
        The package portion, e.g. ``"github.com/org/pkg"`` or ``"svclog"``

    Example:
        >>> package_from_symbol("github.com/org/v2pkg.Func")
        'github.com/org/v2pkg'
        >>> package_from_symbol("svclog.logger.StructuredLogger.info")
        'svclog'
    """
    while True:
        last_period = name.rfind(".")
        last_slash = name.rfind("/")
        if last_period > last_slash:
            name = name[:last_period]
        else:
            break

    return name


def symbol_for(frame: FrameType) -> str:
    """Build the fully qualified symbol name for a live frame."""
    code = frame.f_code
    qualname = getattr(code, "co_qualname", code.co_name)
    module = frame.f_globals.get("__name__")
    if not module:
        return qualname
    return f"{module}.{qualname}"


class ResolverCache:
    """Package name and starting depth shared by every resolution.

    Populated exactly once. Concurrent first callers block on the lock until
    the winner has filled it in, then reuse the result.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._populated = False
        self.self_package = ""
        self.minimum_depth = 0

    @property
    def populated(self) -> bool:
        return self._populated

    def populate(self) -> None:
        """Discover this package's name from the resolver's own frame."""
        if self._populated:
            return
        with self._lock:
            if self._populated:
                return
            self.self_package = _discover_self_package()
            self.minimum_depth = KNOWN_LOGGING_FRAMES
            self._populated = True


def _discover_self_package() -> str:
    """Find the resolver's entry point on the stack and return its package."""
    frame: FrameType | None = sys._getframe(0)
    for _ in range(MAXIMUM_CALLER_DEPTH):
        if frame is None:
            break
        if frame.f_code.co_name == _RESOLVER_ENTRY_POINT:
            return package_from_symbol(symbol_for(frame))
        frame = frame.f_back

    return ""


_default_cache = ResolverCache()


class StackAttribution:
    """Attribution strategy that inspects the live call stack.

    Args:
        minimum_depth: Frames below ``resolve`` to skip before searching.
            Defaults to the cached depth, which matches a call from
            ``JSONFormatter.format``.
        max_depth: Maximum number of frames to examine
        skip_packages: Packages that never count as a caller, in addition to
            this package itself
        cache: Resolver cache to use; defaults to the process-wide one
    """

    def __init__(
        self,
        minimum_depth: int | None = None,
        max_depth: int = MAXIMUM_CALLER_DEPTH,
        skip_packages: frozenset[str] | set[str] = frozenset({LOGGING_PACKAGE}),
        cache: ResolverCache | None = None,
    ) -> None:
        self._minimum_depth = minimum_depth
        self._max_depth = max_depth
        self._skip_packages = frozenset(skip_packages)
        self._cache = cache if cache is not None else _default_cache

    def resolve(self) -> CallerFrame | None:
        """Return the nearest frame outside the logging machinery.

        Returns:
            The attributable frame, or None when no qualifying frame lies
            within ``max_depth`` frames of the starting depth
        """
        self._cache.populate()

        depth = self._minimum_depth
        if depth is None:
            depth = self._cache.minimum_depth

        try:
            frame: FrameType | None = sys._getframe(depth)
        except ValueError:
            # Stack is shallower than the starting depth
            return None

        for _ in range(self._max_depth):
            if frame is None:
                break
            symbol = symbol_for(frame)
            pkg = package_from_symbol(symbol)

            # If the caller isn't part of this package or logging, we're done
            if pkg != self._cache.self_package and pkg not in self._skip_packages:
                return CallerFrame(
                    function=symbol,
                    file=frame.f_code.co_filename,
                    line=frame.f_lineno,
                )
            frame = frame.f_back

        return None


class NoopAttribution:
    """Attribution strategy for callers that opt out of stack inspection."""

    def resolve(self) -> CallerFrame | None:
        return None
