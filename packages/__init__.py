"""Shared Fleet packages.

This namespace exposes helper modules that can be imported by any
application inside the monorepo. The delivery domain lives in
:mod:`packages.fleet_common` and has no web or database dependencies.
"""
