"""Feature modules built on the core RBAC primitives."""
