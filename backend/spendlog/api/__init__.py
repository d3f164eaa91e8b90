"""API package.

This exposes router modules to simplify test imports like:
	from spendlog.api.routes.extraction import router
"""

__all__ = [
	"routes",
]
