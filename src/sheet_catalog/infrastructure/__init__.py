"""Infrastructure layer for the sheet catalog."""

from . import repositories
from . import external
