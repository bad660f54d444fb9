"""
Static worker pool: the primary server plus the ordered set of pool workers.
"""
from dataclasses import dataclass
from typing import Tuple

from .utils.network import build_worker_url


@dataclass(frozen=True)
class WorkerPool:
    primary: str
    workers: Tuple[str, ...]

    def __post_init__(self):
        if not self.primary:
            raise ValueError("A primary ComfyUI server is required")
        # Accept any iterable; store as a tuple so the pool stays immutable
        object.__setattr__(self, "workers", tuple(self.workers))
        if not self.workers:
            raise ValueError("Worker pool must contain at least one worker")

    def __iter__(self):
        return iter(self.workers)

    def __len__(self):
        return len(self.workers)

    def all_endpoints(self):
        """Primary first, then pool workers, without duplicates."""
        endpoints = [self.primary]
        for worker in self.workers:
            if worker not in endpoints:
                endpoints.append(worker)
        return endpoints

    @classmethod
    def from_config(cls, config):
        """Build the pool from a loaded config dict.

        Workers with `enabled: false` are left out; configuration order is kept.
        """
        primary_cfg = config.get("primary") or {}
        if isinstance(primary_cfg, str):
            primary_cfg = {"host": primary_cfg}
        if not (primary_cfg.get("host") or "").strip():
            raise ValueError("Config is missing primary.host")
        primary = build_worker_url(primary_cfg)

        workers = []
        for worker in config.get("workers", []):
            if isinstance(worker, str):
                worker = {"host": worker}
            if not worker.get("enabled", True):
                continue
            workers.append(build_worker_url(worker))

        return cls(primary=primary, workers=tuple(workers))
