"""Depdoc package.

Depdoc fetches npm packages (falling back to `@types/*` when a package ships
no declarations), extracts symbols from their TypeScript declarations and
indexes them for semantic search:
  1) Per-symbol index: one vector per function, class, method, interface...
  2) Per-package index: one pooled vector per package

Entry points:
  - CLI: `depdoc`
  - Library: `depdoc.context.DependencyContext`
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
