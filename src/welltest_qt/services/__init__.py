"""Infrastructure services shared across welltest Qt modules."""

from welltest_qt.services.threading import start_worker, WorkerHandle

__all__ = ["start_worker", "WorkerHandle"]
