"""
Release graph test suite.

This package contains:
- unit/: Unit tests (no I/O beyond temporary files)
- integration/: Build -> publish -> query flows on a temporary output
  directory, plus the HTTP fetcher against an httpx mock transport
"""
