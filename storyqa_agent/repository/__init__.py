from .in_memory import InMemoryTestRepository, TestRepository

__all__ = ["InMemoryTestRepository", "TestRepository"]
