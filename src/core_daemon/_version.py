import importlib.metadata

try:
    VERSION = importlib.metadata.version("upro2api")
except importlib.metadata.PackageNotFoundError:
    # Not installed (e.g., running tests from a source checkout)
    VERSION = "0.0.0-dev"
