"""Feature modules for :mod:`siteembed`."""
