"""Development tools and standalone helpers.

This package contains the opt-in debug instrumentation used by sessions and
the :mod:`demo` command that drives a simulated control loop.
"""
