import sys

from quickenv.config import QUICKENV_NAME
from quickenv.main import main

# argv[0] is this file's path here, which would otherwise look like a shim name.
main([QUICKENV_NAME, *sys.argv[1:]])
