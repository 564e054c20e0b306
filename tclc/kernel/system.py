"""
Functions for querying compute platforms and devices, and creating a context.
"""

import sys
from enum import Enum
from logging import getLogger
from typing import NamedTuple

from . import runtime as rt
from .runtime import RuntimeCallError

logger = getLogger(__name__)


class EnumerationError(Exception):
    """A platform or device query failed"""


class ContextError(Exception):
    """A compute context could not be created"""


class NoMatchingDeviceType(ContextError):
    """The requested device type has no device on the selected platform"""


class InvalidPlatform(ContextError):
    """The runtime rejected the platform handle"""


class UnspecifiedContextError(ContextError):
    """Any other context creation failure"""


class DeviceType(Enum):
    CPU = 0
    GPU = 1

    @property
    def native(self):
        if self is DeviceType.CPU:
            return rt.DEVICE_TYPE_CPU
        return rt.DEVICE_TYPE_GPU


class DeviceEntry(NamedTuple):
    """
    A device handle paired with its position on the platform.
    """

    index: int
    device: object


def classify_device_type(flags):
    """
    Map a native device-type value to one of five labels.

    Only the four single-flag values are recognized; combinations reported by
    some implementations fall through to "Unknown".
    """
    if flags == rt.DEVICE_TYPE_CPU:
        return "CPU"
    elif flags == rt.DEVICE_TYPE_GPU:
        return "GPU"
    elif flags == rt.DEVICE_TYPE_ACCELERATOR:
        return "ACCELERATOR"
    elif flags == rt.DEVICE_TYPE_DEFAULT:
        return "DEFAULT"
    else:
        return "Unknown"


def enumerate_platforms(runtime):
    try:
        return list(runtime.get_platforms())
    except RuntimeCallError as e:
        raise EnumerationError("Could not determine platform IDs") from e


def enumerate_devices(runtime, platform):
    try:
        return list(runtime.get_devices(platform))
    except RuntimeCallError as e:
        raise EnumerationError("Could not determine device IDs") from e


def describe_platform(runtime, platform):
    try:
        return runtime.platform_name(platform)
    except RuntimeCallError as e:
        raise EnumerationError("Could not get platform name") from e


def describe_device(runtime, device):
    """
    Return the name and classified type label of a device.
    """
    try:
        name = runtime.device_name(device)
    except RuntimeCallError as e:
        raise EnumerationError("Could not get device name") from e

    try:
        flags = runtime.device_type(device)
    except RuntimeCallError as e:
        raise EnumerationError("Could not determine device type") from e

    return name, classify_device_type(flags)


def device_set(runtime, platform):
    """
    Return every device of the platform, regardless of type, with its index.
    """
    return [
        DeviceEntry(index, device)
        for index, device in enumerate(enumerate_devices(runtime, platform))
    ]


def list_platforms(runtime, out=None):
    """
    Print each platform followed by its devices, in enumeration order.
    """
    out = out or sys.stdout

    for platform in enumerate_platforms(runtime):
        print(f"Platform: {describe_platform(runtime, platform)}", file=out)

        for index, device in enumerate(enumerate_devices(runtime, platform)):
            name, label = describe_device(runtime, device)
            print(f"    Device {index}: {name}", file=out)
            print(f"        Type: {label}", file=out)


def create_context(runtime, device_type: DeviceType):
    """
    Create a context for all devices of the given type on the first platform.

    Returns the context and the platform it is bound to. Selecting a platform
    other than the first one is not supported.
    """
    try:
        platforms = runtime.get_platforms()
    except RuntimeCallError as e:
        raise EnumerationError("Could not select platform") from e

    if not platforms:
        raise EnumerationError("Could not select platform")

    platform = platforms[0]
    logger.info(f"create {device_type.name} context on first platform")

    try:
        context = runtime.create_context(platform, device_type.native)
    except RuntimeCallError as e:
        if e.code in (rt.INVALID_DEVICE_TYPE, rt.DEVICE_NOT_FOUND):
            raise NoMatchingDeviceType(
                "Chosen device type is not available on your system."
            ) from e
        elif e.code == rt.INVALID_PLATFORM:
            raise InvalidPlatform("Selected platform is invalid") from e
        else:
            raise UnspecifiedContextError("Could not create context") from e

    return context, platform


def log_system_info(runtime, platform, devices):
    """
    Log the selected platform and the devices a build will be checked on.
    """
    logger.info(f"platform: {describe_platform(runtime, platform)}")
    for entry in devices:
        name, label = describe_device(runtime, entry.device)
        logger.info(f"device {entry.index}: {name} ({label})")
