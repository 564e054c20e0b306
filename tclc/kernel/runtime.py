"""
Thin binding to the OpenCL runtime through `pyopencl`.

This is the only module that talks to the compute runtime. Every failing call
is re-raised as a :py:class:`RuntimeCallError` carrying the native status
code, so the rest of the package can classify failures without knowing about
`pyopencl` exception types.
"""

import warnings
from logging import getLogger

import pyopencl as cl

logger = getLogger(__name__)

DEVICE_TYPE_CPU = cl.device_type.CPU
DEVICE_TYPE_GPU = cl.device_type.GPU
DEVICE_TYPE_ACCELERATOR = cl.device_type.ACCELERATOR
DEVICE_TYPE_DEFAULT = cl.device_type.DEFAULT
DEVICE_TYPE_ALL = cl.device_type.ALL

SUCCESS = cl.status_code.SUCCESS
DEVICE_NOT_FOUND = cl.status_code.DEVICE_NOT_FOUND
INVALID_DEVICE_TYPE = cl.status_code.INVALID_DEVICE_TYPE
INVALID_PLATFORM = cl.status_code.INVALID_PLATFORM
BUILD_PROGRAM_FAILURE = cl.status_code.BUILD_PROGRAM_FAILURE

# cl_build_status values; pyopencl does not export them
BUILD_SUCCESS = 0
BUILD_NONE = -1
BUILD_ERROR = -2
BUILD_IN_PROGRESS = -3


class RuntimeCallError(Exception):
    """A call into the compute runtime returned a non-success status"""

    def __init__(self, routine, code):
        super().__init__(f"{routine} failed with status {code}")
        self.routine = routine
        self.code = code


def _call(routine, func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except cl.Error as e:
        logger.debug(f"{routine} returned status {e.code}")
        raise RuntimeCallError(routine, e.code) from e


class OpenCLRuntime:
    """
    Primitive platform, device, context and program operations.

    Handles returned from here are the `pyopencl` objects themselves; they
    are released when the last reference to them is dropped.
    """

    def get_platforms(self):
        return _call("clGetPlatformIDs", cl.get_platforms)

    def get_devices(self, platform):
        return _call(
            "clGetDeviceIDs", platform.get_devices, device_type=DEVICE_TYPE_ALL
        )

    def platform_name(self, platform):
        return _call("clGetPlatformInfo", platform.get_info, cl.platform_info.NAME)

    def device_name(self, device):
        return _call("clGetDeviceInfo", device.get_info, cl.device_info.NAME)

    def device_type(self, device):
        return _call("clGetDeviceInfo", device.get_info, cl.device_info.TYPE)

    def create_context(self, platform, device_type):
        return _call(
            "clCreateContextFromType",
            cl.Context,
            dev_type=device_type,
            properties=[(cl.context_properties.PLATFORM, platform)],
        )

    def create_program(self, context, source):
        """
        Create a program object from source bytes.

        `pyopencl` defers creating the native program until it is first used;
        querying an attribute here forces creation so that failures surface
        now, and so the following build runs uncached on that same object.
        """
        program = cl.Program(context, source)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            _call(
                "clCreateProgramWithSource",
                program.get_info,
                cl.program_info.REFERENCE_COUNT,
            )
        return program

    def build_program(self, program):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", cl.CompilerWarning)
            _call("clBuildProgram", program.build)

    def build_status(self, program, device):
        return _call(
            "clGetProgramBuildInfo",
            program.get_build_info,
            device,
            cl.program_build_info.STATUS,
        )

    def build_log(self, program, device):
        return _call(
            "clGetProgramBuildInfo",
            program.get_build_info,
            device,
            cl.program_build_info.LOG,
        )
