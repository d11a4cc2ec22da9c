"""guessthat: local card cache and replenishment for the Guess That word game."""

from guessthat.consts import VERSION

__version__ = VERSION
