"""
Shared fixtures for the backend tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from takeoff_backend.config import Settings
from takeoff_backend.errors import StorageError
from takeoff_backend.storage import InMemoryStorageClient

TEST_SECRET = "test-secret-for-unit-tests"


def make_settings(**overrides) -> Settings:
    values = {
        "jwt_secret": TEST_SECRET,
        "use_in_memory_backends": True,
        "environment": "test",
        "bcrypt_rounds": 4,
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def pdf_bytes(size: int = 1024) -> bytes:
    header = b"%PDF-1.4\n"
    return header + b"0" * (size - len(header))


@dataclass
class FlakyStorageClient(InMemoryStorageClient):
    """In-memory storage that fails chosen put calls (1-based) or delete URLs."""

    fail_puts: set = field(default_factory=set)
    fail_deletes: set = field(default_factory=set)
    put_calls: int = 0
    delete_calls: list = field(default_factory=list)

    def put(self, data: bytes, content_type: str, filename: str) -> str:
        self.put_calls += 1
        if self.put_calls in self.fail_puts:
            raise StorageError(f"simulated upload failure for {filename}")
        return super().put(data, content_type, filename)

    def delete(self, url: str) -> None:
        self.delete_calls.append(url)
        if url in self.fail_deletes:
            raise RuntimeError(f"simulated delete failure for {url}")
        super().delete(url)
