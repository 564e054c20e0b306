"""
Builds kernel source files into programs and reports per-device build logs.

Each file is opened, mapped read-only, submitted as a single program unit and
built against every device of the context. A clean build prints nothing. A
build failure prints the log of each device whose build status is an error,
and the pipeline moves on to the next file; every other failure is fatal and
raised to the caller.
"""

import mmap
import sys
from contextlib import contextmanager
from enum import Enum
from logging import getLogger, INFO
from typing import NamedTuple

from . import runtime as rt
from .runtime import RuntimeCallError
from .system import create_context, device_set, log_system_info
from ..sources import SourceEntry, SourceError

logger = getLogger(__name__)


class ProgramError(Exception):
    """A program object could not be created from source"""


class BuildError(Exception):
    """A build failed in a way that is not a source compile error"""


class BuildStatus(Enum):
    SUCCESS = 0
    BUILD_ERROR = 1
    OTHER_ERROR = 2


class BuildOutcome(NamedTuple):
    """
    Result of building one program for one device. `log` is only set for
    `BuildStatus.BUILD_ERROR`.
    """

    index: int
    status: BuildStatus
    log: str = None


def source_length(data):
    """
    Return the number of bytes up to the first NUL, or the full length.
    """
    nul = data.find(b"\0")
    return len(data) if nul == -1 else nul


@contextmanager
def read_source(entry: SourceEntry):
    """
    Map a source file and yield its program text as bytes.

    The file is mapped with the size recorded when it was validated, and the
    text stops at the first NUL byte in the mapping. The bytes are passed to
    the runtime unchanged. The file stays open and mapped until the block
    exits, and the mapping is released before the file is closed.
    """
    try:
        f = open(entry.path, "rb")
    except OSError as e:
        raise SourceError(f"Could not open file {entry.path}") from e

    with f:
        try:
            mapped = mmap.mmap(f.fileno(), entry.size, access=mmap.ACCESS_READ)
        except (OSError, ValueError) as e:
            raise SourceError(f"Could not map file {entry.path}") from e

        with mapped:
            yield mapped[: source_length(mapped)]


def device_outcome(runtime, program, entry):
    """
    Query one device's build status, and its log if the status is an error.
    """
    try:
        status = runtime.build_status(program, entry.device)
    except RuntimeCallError:
        logger.debug(f"no build status for device {entry.index}")
        return BuildOutcome(entry.index, BuildStatus.OTHER_ERROR)

    if status == rt.BUILD_SUCCESS:
        return BuildOutcome(entry.index, BuildStatus.SUCCESS)
    if status != rt.BUILD_ERROR:
        return BuildOutcome(entry.index, BuildStatus.OTHER_ERROR)

    try:
        log = runtime.build_log(program, entry.device)
    except RuntimeCallError as e:
        raise BuildError("Could not retrieve build log") from e

    return BuildOutcome(entry.index, BuildStatus.BUILD_ERROR, log)


def compile_source(runtime, source: SourceEntry, context, devices, out=None):
    """
    Build one source file against every device of the context.

    Returns an empty list if the build succeeded. Otherwise returns one
    outcome per device in `devices`, after printing the log of each device
    that reported a build error.
    """
    out = out or sys.stdout

    with read_source(source) as text:
        logger.info(f"compile {source.path} ({len(text)} bytes)")

        try:
            program = runtime.create_program(context, text)
        except RuntimeCallError as e:
            raise ProgramError("Could not create program from source") from e

        try:
            runtime.build_program(program)
            return []

        except RuntimeCallError as e:
            if e.code != rt.BUILD_PROGRAM_FAILURE:
                raise BuildError("Unspecified build failure") from e

    outcomes = [device_outcome(runtime, program, entry) for entry in devices]

    for outcome in outcomes:
        if outcome.status == BuildStatus.BUILD_ERROR:
            print(outcome.log, file=out)

    return outcomes


def compile_all(runtime, config, out=None):
    """
    Create a context for the configured device type and build each source.

    Sources are built strictly in order. Returns the number of files that
    failed to build.
    """
    context, platform = create_context(runtime, config.device_type)
    devices = device_set(runtime, platform)

    if logger.isEnabledFor(INFO):
        log_system_info(runtime, platform, devices)

    failed = 0
    for source in config.sources:
        if compile_source(runtime, source, context, devices, out=out):
            logger.info(f"build failed: {source.path}")
            failed += 1

    logger.info(f"built {len(config.sources) - failed}/{len(config.sources)} file(s)")
    return failed
