"""msamiati: local-first core of a Swahili/Korean vocabulary trainer."""

from msamiati.consts import VERSION

__version__ = VERSION
