"""
Rankstream Test Suite
=====================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with in-memory fakes (no external dependencies)
- tests/integration/   : Integration tests with testcontainers (real PostgreSQL/Redis)

Testing Philosophy
------------------
- Unit tests: fast, isolated, cover pipeline and reconciler semantics
- Integration tests: slower, cover the SQL and Redis commands themselves
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
