"""recall: a spaced-repetition scheduling core with study sessions and undo."""

from recall.consts import VERSION

__version__ = VERSION
