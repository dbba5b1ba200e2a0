"""modentropy"""

from importlib.metadata import PackageNotFoundError, version

from . import config, entropy
from . import informatics as inform

package_name = "modentropy"
try:
    __version__ = version(package_name)
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "config",
    "entropy",
    "inform",
]
