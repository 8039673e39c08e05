"""Shelf core package.

Modules:
- walker: bounded directory traversal and EPUB discovery
- duplicates: duplicate detection and cleanup
- archive: zip access and decompression
- package: package document (OPF) pattern extraction
- paths: archive path normalization and cover path resolution
- covers: cover image cache
- extractor: per-archive metadata extraction
- scanner: library index facade
- inbox: pending book hand-off
- api: FastAPI app for collaborators
- monitor: Watchdog-based rescans
- config: INI parsing and config object
"""
