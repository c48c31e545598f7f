"""ConDecon package entrypoint."""

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version(__name__)
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["training", "build_training_set", "__version__"]


def __getattr__(name):
    if name == "training":
        module = import_module("condecon.training")
        globals()[name] = module
        return module
    if name == "build_training_set":
        return import_module("condecon.training").build_training_set
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
