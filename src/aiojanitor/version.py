"""Version information for aiojanitor."""

__version_info__ = (0, 3, 1)
__version__ = ".".join("{0}".format(x) for x in __version_info__)
