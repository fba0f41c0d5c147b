from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cpt-task")
except PackageNotFoundError:
    __version__ = "unknown"
