"""Imaging package for the placeholder image pipeline.

This package turns a parsed image URL into encoded image bytes:
colour resolution, font loading, text layout with pictographs, the layered
compositor and the output encoders. The HTTP layer in ``main.py`` only
parses the request, calls into here and shapes the response. See
individual modules for details.
"""
