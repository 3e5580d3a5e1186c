#!/usr/bin/env python3
# CUI // SP-CTI
"""specgate: validation and staleness core for document-driven workflows."""

__version__ = "0.4.0"
