#
# Arbitrary precision binary floating point
#

from .errors import *
from .bigint import *
from .context import *
from .floats import *

__all__ = (errors.__all__ + bigint.__all__ + context.__all__ + floats.__all__)

__version__ = '0.1.0'
