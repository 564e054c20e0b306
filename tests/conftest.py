import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

import pytest

from tclc.kernel import runtime as rt
from tclc.kernel.runtime import RuntimeCallError


class FakeDevice(NamedTuple):
    name: str
    type: int


class FakePlatform(NamedTuple):
    name: str
    devices: List[FakeDevice]


class FakeContext(NamedTuple):
    platform: FakePlatform
    devices: List[FakeDevice]


class FakeProgram(NamedTuple):
    context: FakeContext
    source: bytes


class FakeRuntime:
    """In-memory stand-in for :py:class:`tclc.kernel.runtime.OpenCLRuntime`.

    ``results`` maps a program's source (str or bytes) to a mapping of device
    name to ``(build_status, log)``. Devices not mentioned build successfully.
    ``built`` records the source bytes of every program, in build order.
    ``fail`` maps a method name to the status code that call should fail with.
    """

    def __init__(
        self,
        platforms: List[FakePlatform],
        results: Optional[Dict[str, Dict[str, Tuple[int, str]]]] = None,
        fail: Optional[Dict[str, int]] = None,
    ) -> None:
        self.platforms = platforms
        self.results = {
            k.encode() if isinstance(k, str) else k: v for k, v in (results or {}).items()
        }
        self.fail = fail or {}
        self.calls: List[str] = []
        self.built: List[bytes] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise RuntimeCallError(name, self.fail[name])

    def get_platforms(self):
        self._enter("get_platforms")
        return list(self.platforms)

    def get_devices(self, platform):
        self._enter("get_devices")
        return list(platform.devices)

    def platform_name(self, platform):
        self._enter("platform_name")
        return platform.name

    def device_name(self, device):
        self._enter("device_name")
        return device.name

    def device_type(self, device):
        self._enter("device_type")
        return device.type

    def create_context(self, platform, device_type):
        self._enter("create_context")
        devices = [d for d in platform.devices if d.type & device_type]
        if not devices:
            raise RuntimeCallError("create_context", rt.DEVICE_NOT_FOUND)
        return FakeContext(platform, devices)

    def create_program(self, context, source):
        self._enter("create_program")
        return FakeProgram(context, source)

    def build_program(self, program):
        self._enter("build_program")
        self.built.append(program.source)
        statuses = self.results.get(program.source, {})
        for device in program.context.devices:
            status, _ = statuses.get(device.name, (rt.BUILD_SUCCESS, ""))
            if status != rt.BUILD_SUCCESS:
                raise RuntimeCallError("build_program", rt.BUILD_PROGRAM_FAILURE)

    def build_status(self, program, device):
        self._enter("build_status")
        if device not in program.context.devices:
            raise RuntimeCallError("build_status", rt.INVALID_DEVICE_TYPE)
        statuses = self.results.get(program.source, {})
        return statuses.get(device.name, (rt.BUILD_SUCCESS, ""))[0]

    def build_log(self, program, device):
        self._enter("build_log")
        return self.results[program.source][device.name][1]


CPU = FakeDevice("Fake CPU", rt.DEVICE_TYPE_CPU)
GPU = FakeDevice("Fake GPU", rt.DEVICE_TYPE_GPU)
GPU2 = FakeDevice("Fake GPU 2", rt.DEVICE_TYPE_GPU)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo the handler and level installed by ``init_logging`` after each test."""
    yield
    package_logger = logging.getLogger("tclc")
    package_logger.handlers[:] = []
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def devices():
    return {"cpu": CPU, "gpu": GPU, "gpu2": GPU2}


@pytest.fixture
def make_platform():
    return FakePlatform


@pytest.fixture
def platform():
    return FakePlatform("Fake Platform", [CPU, GPU])


@pytest.fixture
def make_runtime(platform):
    """Return a factory for fake runtimes bound to the default fake platform."""

    def make(platforms=None, **kwargs) -> FakeRuntime:
        return FakeRuntime(platforms if platforms is not None else [platform], **kwargs)

    return make


@pytest.fixture
def write_source(tmp_path):
    """Write kernel source text (str or bytes) to a file and return its path."""

    def write(name: str, content) -> str:
        path = tmp_path / name
        if isinstance(content, str):
            path.write_text(content)
        else:
            path.write_bytes(content)
        return str(path)

    return write


def _opencl_available() -> bool:
    """Check if the OpenCL runtime reports at least one platform.

    Returns
    -------
    bool
        True if a platform is available, False otherwise.
    """
    try:
        return len(rt.OpenCLRuntime().get_platforms()) > 0
    except RuntimeCallError:
        return False


def pytest_collection_modifyitems(config: pytest.Config, items: List[pytest.Item]) -> None:
    """Skip tests that require an OpenCL platform when none is available."""
    if not any(m for item in items for m in item.iter_markers(name="requires_opencl")):
        return
    if _opencl_available():
        return

    skip_opencl = pytest.mark.skip(reason="no OpenCL platform available, skip test")
    for item in items:
        if any(item.iter_markers(name="requires_opencl")):
            item.add_marker(skip_opencl)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "requires_opencl: test needs a real OpenCL platform")
