# The entry point lives at tensorsafe.cli.main:main; importing it here would
# shadow the submodule.
from .main import TensorsafeCLI

__all__ = ["TensorsafeCLI"]
