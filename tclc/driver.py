"""
Library functions and command-line access to the kernel compile driver.
"""

import sys
from typing import NamedTuple
from logging import getLogger

from tclc import __version__
from tclc.sources import SourceRegistry, SourceError
from tclc.kernel.system import DeviceType, EnumerationError, ContextError

logger = getLogger(__name__)

USAGE = """Usage: tclc [options] filename...
Options:
  -d <arg>     Specify the device type. arg is either CPU or GPU. default is GPU
  -l           List all available platforms, devices and device types
  -v           Print version information
  -h, --help   Show this help
"""

VERSION = f"tclc {__version__} © 2010 Nicolai Waniek, see LICENSE for details"


class ConfigurationError(Exception):
    """An invalid runtime configuration"""


class UsageError(ConfigurationError):
    """No source files were given"""


class UserConfig(NamedTuple):
    """
    Settings read from the .tclc file in the working directory.

    The device type is kept as written and only validated when no `-d`
    option overrides it.
    """

    device_type: str = "GPU"
    log_level: str = "WARNING"
    filename: str = ".tclc"


class RunConfig(NamedTuple):
    """
    The validated configuration of a compile run.

    Constructed once from the command line and passed to every later stage.
    """

    device_type: DeviceType
    sources: SourceRegistry


def parse_device_type(value):
    """
    Return the device type named by `value`, which must begin with CPU or GPU.
    """
    if value.startswith("CPU"):
        return DeviceType.CPU
    if value.startswith("GPU"):
        return DeviceType.GPU
    raise ConfigurationError(f"Invalid Platform {value}")


def load_user_config(filename=".tclc"):
    """
    Read defaults from an INI-style file, if it exists.

    The `device` section may set `type` to CPU or GPU, which is used when no
    `-d` option is given. The `logging` section may set `level` to a standard
    logging level name.
    """
    from configparser import ConfigParser, Error

    config = ConfigParser()

    try:
        config.read(filename)
    except Error as e:
        raise ConfigurationError(f"could not read {filename}: {e}")

    user = UserConfig(filename=filename)

    try:
        user = user._replace(device_type=config["device"]["type"])
    except KeyError:
        pass

    try:
        user = user._replace(log_level=config["logging"]["level"].upper())
    except KeyError:
        pass

    return user


def make_parser():
    import argparse

    class ArgumentParser(argparse.ArgumentParser):
        def error(self, message):
            raise ConfigurationError(message)

    class FirstOf(argparse.Action):
        def __call__(self, parser, namespace, values, option_string=None):
            if getattr(namespace, self.dest) is None:
                setattr(namespace, self.dest, self.const)

    parser = ArgumentParser(
        prog="tclc",
        usage=argparse.SUPPRESS,
        add_help=False,
        allow_abbrev=False,
    )
    # whichever of -h and -v comes first on the command line wins
    parser.add_argument(
        "-h", "--help", dest="short_circuit", action=FirstOf, nargs=0, const="help"
    )
    parser.add_argument(
        "-v", dest="short_circuit", action=FirstOf, nargs=0, const="version"
    )
    parser.add_argument("-l", dest="list_devices", action="store_true")
    parser.add_argument("-d", dest="device_type", nargs="?", const="")
    return parser


def parse_args(argv):
    """
    Tokenize the command line and return `(args, filenames)`.

    Tokens that are not recognized options are treated as source file names
    and kept in the order given.
    """
    args, filenames = make_parser().parse_known_args(argv)

    if "--" in filenames:
        filenames.remove("--")

    return args, filenames


def make_config(args, filenames, user=None):
    """
    Validate the tokenized command line and build a :py:class:`RunConfig`.

    The device type is checked before any source file is looked at.
    """
    user = user or UserConfig()

    if args.device_type is None:
        try:
            device_type = parse_device_type(user.device_type)
        except ConfigurationError as e:
            raise ConfigurationError(f"{e} in {user.filename}")
    elif args.device_type == "":
        raise ConfigurationError("Insufficient argument -d")
    else:
        device_type = parse_device_type(args.device_type)

    sources = SourceRegistry.from_paths(filenames)

    if not sources:
        raise UsageError("no source files given")

    return RunConfig(device_type=device_type, sources=sources)


def init_logging(level="WARNING"):
    """
    Enable logging to standard error.

    Standard output is reserved for listings and build logs, so the handler
    writes to standard error, and at the default WARNING level a successful
    run produces no log output.
    """
    from logging import StreamHandler, Formatter

    class RunFormatter(Formatter):
        def format(self, record):
            name = record.name.replace("tclc.", "")

            if record.levelno <= 20:
                return f"[{name}] {record.getMessage()}"
            else:
                return f"[{name}:{record.levelname.lower()}] {record.getMessage()}"

    handler = StreamHandler(sys.stderr)
    handler.setFormatter(RunFormatter())

    package_logger = getLogger("tclc")
    package_logger.handlers[:] = [handler]
    package_logger.propagate = False

    try:
        package_logger.setLevel(level)
    except ValueError:
        raise ConfigurationError(f"unknown logging level {level}")


def run(config: RunConfig, runtime=None, out=None):
    """
    Build every source in `config` and return the number of failed files.

    If `runtime` is not given the OpenCL runtime is used.
    """
    from tclc.kernel.library import compile_all

    if runtime is None:
        from tclc.kernel.runtime import OpenCLRuntime

        runtime = OpenCLRuntime()

    return compile_all(runtime, config, out=out)


def list_devices(runtime=None, out=None):
    from tclc.kernel.system import list_platforms

    if runtime is None:
        from tclc.kernel.runtime import OpenCLRuntime

        runtime = OpenCLRuntime()

    list_platforms(runtime, out=out)


def main(argv=None, runtime=None):
    """
    General-purpose command line interface. Returns the process exit code.
    """
    from tclc.kernel.library import ProgramError, BuildError

    argv = sys.argv[1:] if argv is None else list(argv)

    if not argv:
        sys.stderr.write(USAGE)
        return 1

    try:
        args, filenames = parse_args(argv)

        if args.short_circuit == "help":
            sys.stdout.write(USAGE)
            return 0

        if args.short_circuit == "version":
            print(VERSION)
            return 0

        user = load_user_config()
        init_logging(user.log_level)

        if args.list_devices:
            list_devices(runtime)
            return 0

        config = make_config(args, filenames, user)
        logger.info(f"{len(config.sources)} source file(s) for {config.device_type.name}")
        run(config, runtime=runtime)
        return 0

    except UsageError:
        sys.stderr.write(USAGE)

    except (
        ConfigurationError,
        SourceError,
        EnumerationError,
        ContextError,
        ProgramError,
        BuildError,
    ) as e:
        print(f"ERROR: {e}", file=sys.stderr)

    except KeyboardInterrupt:
        print("", file=sys.stderr)
        return 130

    return 1
