from arena.tests.mocks.connection import MockConnection

__all__ = ["MockConnection"]
