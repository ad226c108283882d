from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _version

from cbit.compiler import compile_code, exec_code
from cbit.loader import CbitLoader, install_import_hook, load_module

__version__: str
try:
    __version__ = _version(__name__)
except PackageNotFoundError:
    from cbit.version import version

    __version__ = version
