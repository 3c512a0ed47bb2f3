"""
Pytest configuration file.

Puts the python/ directory on sys.path so tests can import ecr_lifecycle and
the delete_unused_images entry point without installing the project, and
provides fixtures shared by the workload tests.
"""
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

_python_dir = str((Path(__file__).parent.parent / 'python').absolute())
if _python_dir not in sys.path:
    sys.path.insert(0, _python_dir)


@pytest.fixture
def make_pod_spec():
    """Factory building a minimal V1PodSpec look-alike from image references"""

    def _make(images, init_images=None):
        return SimpleNamespace(
            containers=[SimpleNamespace(image=image) for image in images],
            init_containers=[SimpleNamespace(image=image) for image in init_images] if init_images else None,
        )

    return _make
