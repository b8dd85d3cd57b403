"""
Schema package for the Workforce Impact Analyzer.

This package contains the typed records (dataclasses) that flow through the
alignment -> trend -> impact pipeline and the result cache.
"""
