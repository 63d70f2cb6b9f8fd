"""测试公用的伪引擎：替代 subprocess.run，模拟 magick 的 identify 与转换。"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

import pytest

from image_thumbnailer.processing.engine import MagickEngine

FAKE_EXECUTABLE = Path("/opt/imagemagick/bin/magick")

Dimensions = Union[Tuple[int, int], str]


class FakeMagick:
    """按文件名返回尺寸，按目标尺寸模拟各种失败。"""

    def __init__(
        self,
        dimensions: Optional[Dict[str, Dimensions]] = None,
        *,
        fail_sizes: Iterable[int] = (),
        no_output_sizes: Iterable[int] = (),
        raise_sizes: Iterable[int] = (),
        timeout_sizes: Iterable[int] = (),
        interrupt_sizes: Iterable[int] = (),
        flaky: Optional[Dict[int, int]] = None,
    ) -> None:
        self.dimensions = dict(dimensions or {})
        self.fail_sizes = set(fail_sizes)
        self.no_output_sizes = set(no_output_sizes)
        self.raise_sizes = set(raise_sizes)
        self.timeout_sizes = set(timeout_sizes)
        self.interrupt_sizes = set(interrupt_sizes)
        self.timeouts: list[Optional[float]] = []
        self.flaky = dict(flaky or {})
        self.calls: list[list[str]] = []

    @property
    def transform_calls(self) -> list[list[str]]:
        return [call for call in self.calls if call[1] != "identify"]

    def __call__(self, command, capture_output=True, text=True, timeout=None, check=False):
        self.calls.append(list(command))
        self.timeouts.append(timeout)
        if command[1] == "identify":
            return self._identify(command)
        return self._transform(command, timeout)

    def _identify(self, command):
        dims = self.dimensions.get(Path(command[-1]).name)
        if dims is None:
            return subprocess.CompletedProcess(command, 1, "", "identify: no decode delegate")
        stdout = dims if isinstance(dims, str) else f"{dims[0]} {dims[1]}\n"
        return subprocess.CompletedProcess(command, 0, stdout, "")

    def _transform(self, command, timeout):
        size = int(command[command.index("-resize") + 1].split("x")[0])
        if size in self.interrupt_sizes:
            raise KeyboardInterrupt
        if size in self.raise_sizes:
            raise FileNotFoundError(2, "No such file or directory", command[0])
        if size in self.timeout_sizes:
            raise subprocess.TimeoutExpired(command, timeout or 1.0, stderr=b"still working")
        if size in self.fail_sizes:
            return subprocess.CompletedProcess(command, 1, "", "magick: unable to write blob")
        if self.flaky.get(size, 0) > 0:
            self.flaky[size] -= 1
            return subprocess.CompletedProcess(command, 1, "", "magick: resource temporarily unavailable")

        destination = Path(command[-1].split(":", 1)[1])
        if size not in self.no_output_sizes:
            destination.write_bytes(b"thumbnail")
        return subprocess.CompletedProcess(command, 0, "", "")


def make_engine(fake: FakeMagick, timeout: Optional[float] = None) -> MagickEngine:
    return MagickEngine(executable=FAKE_EXECUTABLE, timeout=timeout, runner=fake)


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"source-image")
    return path


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    root = tmp_path / "photos"
    root.mkdir()
    return root
